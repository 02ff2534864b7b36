"""
Custom exceptions for repository and messaging operations.
"""

from typing import Iterable

# canonical repository-level exception

class RepositoryError(Exception):
    """
    Base exception for repository/service errors.

    - message: human-friendly message (safe to show to clients)
    - fields: optional list of field names related to the error (e.g., ['text'])
    - constraint: optional DB constraint name or identifier (for logs only)
    - error_code: canonical short code (e.g., 'duplicate', 'forbidden') used by clients
    """

    # Map canonical error_code -> default HTTP status.
    ERROR_CODE_TO_STATUS = {
        "duplicate": 409,
        "invalid_field": 422,
        "invalid_input": 422,
        "not_found": 404,
        "unauthenticated": 401,
        "forbidden": 403,
        "internal": 500,
        # fallback: default to 400 for general repository errors
    }

    def __init__(self, message: str, *, fields: Iterable[str] | None = None,
                 constraint: str | None = None, error_code: str | None = None):
        super().__init__(message)
        self.message = message  # user-friendly message
        self.fields = list(fields) if fields else None
        self.constraint = constraint
        self.error_code = error_code

    def __str__(self) -> str:
        base = self.message
        parts = []
        if self.fields:
            parts.append(f"fields: {', '.join(self.fields)}")
        if self.constraint:
            parts.append(f"constraint: {self.constraint}")
        if self.error_code:
            parts.append(f"code: {self.error_code}")
        if parts:
            return f"{base} ({'; '.join(parts)})"
        return base

    def to_payload(self) -> dict:
        """
        Return a JSON-serializable dict suitable for HTTP responses.
        Standard shape:
            {
                "status": "error",
                "detail": "A human-friendly message",
                "code": "forbidden",           # optional canonical code
                "fields": ["text"],            # optional list for client usage
            }
        The `constraint` value is never included; it is for logs only.
        """
        payload = {"status": "error", "detail": self.message}
        if self.error_code:
            payload["code"] = self.error_code
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload

    def http_status(self) -> int:
        """
        Return the HTTP status code that should accompany this error.
        Unknown or missing error codes map to 400 (Bad Request).
        """
        if self.error_code:
            return self.ERROR_CODE_TO_STATUS.get(self.error_code, 400)
        return 400


class NotFoundError(RepositoryError):
    def __init__(self, message: str = "Not found", *, fields: Iterable[str] | None = None):
        super().__init__(message, fields=fields, error_code="not_found")


class DuplicateError(RepositoryError):
    """
    A unique constraint rejected the write (the Conflict case).

    The messaging layer recovers from this internally when two callers race to start
    the same conversation; other callers may let it surface as a 409.
    """

    def __init__(self, message: str, *, fields: Iterable[str] | None = None, constraint: str | None = None):
        super().__init__(message, fields=fields, constraint=constraint, error_code="duplicate")


class InvalidFieldError(RepositoryError):
    """Raised when the caller passes unexpected/unknown fields to repository methods."""

    def __init__(self, message: str, *, fields: Iterable[str] | None = None):
        super().__init__(message, fields=fields, error_code="invalid_field")


class InvalidInputError(RepositoryError):
    """Missing or malformed input (empty message text, unknown message kind, self-conversation)."""

    def __init__(self, message: str, *, fields: Iterable[str] | None = None):
        super().__init__(message, fields=fields, error_code="invalid_input")


class ForbiddenError(RepositoryError):
    """The authenticated caller may not perform this operation on an existing entity."""

    def __init__(self, message: str = "Forbidden", *, fields: Iterable[str] | None = None):
        super().__init__(message, fields=fields, error_code="forbidden")


class NotParticipantError(ForbiddenError):
    """The caller is not one of the two participants of the conversation."""

    def __init__(self, message: str = "You are not a participant in this conversation"):
        super().__init__(message)


class UnauthenticatedError(RepositoryError):
    """No verified requester identity reached the service (missing or malformed X-User-ID)."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, error_code="unauthenticated")


class InternalError(RepositoryError):
    """Storage or transport failure. The message stays opaque; details go to the logs."""

    def __init__(self, message: str = "Internal server error", *, constraint: str | None = None):
        super().__init__(message, constraint=constraint, error_code="internal")


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
