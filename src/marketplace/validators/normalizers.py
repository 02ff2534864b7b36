"""
Small value normalizers shared by settings validators and repositories.
"""

import re

from marketplace.exceptions.base import InvalidInputError


def to_uppercase(value: str | None) -> str | None:
    """
    Converts a string to uppercase if it's not None.
    """
    if value is None:
        return None
    return value.upper()

def to_lowercase(value: str | None) -> str | None:
    """
    Converts a string to lowercase if it's not None.
    """
    if value is None:
        return None
    return value.lower()


def normalize_email(value: str | None) -> str | None:
    """
    Trim and lowercase an email address. Blank values become None (email is optional).
    """
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


# keep a leading '+' for E.164 numbers, drop spaces, dashes, dots and brackets
_PHONE_NOISE = re.compile(r"[\s\-().]")

def normalize_phone(value: str) -> str:
    """
    Strip formatting characters from a phone number: "+1 (555) 010-2030" -> "+15550102030".
    """
    return _PHONE_NOISE.sub("", value or "")


def clean_text(value: str | None, *, field: str = "text") -> str:
    """
    Strip surrounding whitespace and reject empty text.

    Raises:
        InvalidInputError: if nothing is left after stripping.
    """
    cleaned = (value or "").strip()
    if not cleaned:
        raise InvalidInputError(f"{field.capitalize()} must not be empty", fields=[field])
    return cleaned
