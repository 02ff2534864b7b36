# marketplace/
# │
# ├── exceptions/
# │   ├── __init__.py
# │   ├── base.py                    # App-level errors (RepositoryError, ForbiddenError, ...)
# │   ├── integrity_classifier.py    # SQL-level / DB-specific errors
# │   └── mapper.py                  # Map SQL-level / DB-specific errors to app-level errors

from .base import (
    RepositoryError,
    NotFoundError,
    DuplicateError,
    InvalidFieldError,
    InvalidInputError,
    ForbiddenError,
    NotParticipantError,
    UnauthenticatedError,
    InternalError,
)

__all__ = [
    "RepositoryError",
    "NotFoundError",
    "DuplicateError",
    "InvalidFieldError",
    "InvalidInputError",
    "ForbiddenError",
    "NotParticipantError",
    "UnauthenticatedError",
    "InternalError",
]
