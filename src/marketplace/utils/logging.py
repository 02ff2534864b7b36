"""
Project identity for log records: the `service` and `version` fields of JSON logs.

Installed containers answer from the distribution metadata; a source checkout falls back
to the nearest pyproject.toml.
"""

import tomllib
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Any

DISTRIBUTION_NAME = "marketplace-messaging"


def find_pyproject(start: Path, max_up: int = 5) -> Path | None:
    """Nearest pyproject.toml at or above `start`, looking at most `max_up` levels."""
    for directory in [start, *start.parents][:max_up]:
        candidate = directory / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def get_pyproject_value(key: str, start: str | Path | None = None, max_up: int = 5, default: Any = None) -> Any:
    """
    Dotted `key` (e.g. "project.version") from the nearest pyproject.toml, or `default`
    when there is no readable file or the key is missing.
    """
    start_path = Path(start).resolve() if start is not None else Path(__file__).resolve().parent
    pyproject = find_pyproject(start_path, max_up=max_up)
    if pyproject is None:
        return default

    try:
        with pyproject.open("rb") as f:
            value = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return default

    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            return default
        value = value[part]
    return value


def get_project_name(start: str | Path | None = None, default: str = DISTRIBUTION_NAME) -> str:
    return get_pyproject_value("project.name", start=start, default=default)


def get_project_version(start: str | Path | None = None, default: str = "unknown") -> str:
    try:
        return importlib_metadata.version(DISTRIBUTION_NAME)
    except importlib_metadata.PackageNotFoundError:
        return get_pyproject_value("project.version", start=start, default=default)


__all__ = [
    "DISTRIBUTION_NAME",
    "find_pyproject",
    "get_pyproject_value",
    "get_project_name",
    "get_project_version",
]
