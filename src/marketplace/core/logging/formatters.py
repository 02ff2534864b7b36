# src/marketplace/core/logging/formatters.py
"""
Formatters: one JSON object per line for production, colored columns for local runs.
"""

import json
import logging
from typing import Any
from logging import LogRecord

from marketplace.utils.logging import DISTRIBUTION_NAME, get_project_version

PROJECT_VERSION = get_project_version()

# LogRecord attributes that are not user-supplied `extra`
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "request_id", "user_id"}


class JsonFormatter(logging.Formatter):
    """
    Structured JSON log lines.

    Fixed keys: timestamp, level, logger, message, pathname, lineno, request_id, user_id,
    service, env, version. Any `extra={...}` keys are appended; values that are not JSON
    serializable (UUIDs, datetimes) are stringified.
    """

    def __init__(self, *, env: str | None = None, service: str = DISTRIBUTION_NAME, datefmt: str | None = None):
        super().__init__(datefmt=datefmt)
        self.env = env
        self.service = service

    def format(self, record: LogRecord) -> str:
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "pathname": record.pathname,
            "lineno": record.lineno,
            "request_id": getattr(record, "request_id", "-"),
            "user_id": getattr(record, "user_id", "-"),
            "service": self.service,
            "env": self.env,
            "version": PROJECT_VERSION,
        }

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED or key in log_record or key.startswith("_"):
                continue
            log_record[key] = value

        return json.dumps(log_record, ensure_ascii=False, default=str)


class ColorFormatter(logging.Formatter):
    """
    Human-readable, colored output for `LOG_FORMAT=text`:

        2026-01-01 12:00:00,000 | INFO       | marketplace.services.messaging_service | 3f2a... | messaging.send.success
    """

    COLOR_CODES = {
        "DEBUG": "\033[1;36;47m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;41m",
        "RESET": "\033[0m",
    }

    def format(self, record: LogRecord) -> str:
        color = self.COLOR_CODES.get(record.levelname, "")
        reset = self.COLOR_CODES["RESET"]
        timestamp = self.formatTime(record, self.datefmt)

        base = (
            f"{timestamp} | {color}{record.levelname:<10}{reset} | "
            f"{record.name:<30} | "
            f"{getattr(record, 'request_id', '-'):<10} | "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            base = base + "\n" + self.formatException(record.exc_info)
        return base
