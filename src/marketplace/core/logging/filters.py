# src/marketplace/core/logging/filters.py
"""
Logging filters.

Request context
---------------
The request id and the requester's user id live in `contextvars`, so they follow a
request across awaits and tasks. `RequestContextFilter` copies them onto every
`LogRecord` (falling back to "-") so formatters can reference `%(request_id)s` and
`%(user_id)s` without KeyError.

The middleware (middleware.py) sets the request id; the requester dependency in
api/v1/dependencies.py sets the user id once X-User-ID has been parsed.

Redaction
---------
`RedactFilter` masks credential-like `extra` keys at every level, and masks
conversation content (message text) on records above DEBUG.
"""

import logging
from logging import LogRecord
import contextvars

_request_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)
_user_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar("user_id", default=None)


def set_request_id(request_id: str | None):
    """Store the request id for the current context. Returns a token for reset_request_id()."""
    return _request_id_ctx.set(request_id)


def reset_request_id(token):
    _request_id_ctx.reset(token)


def get_request_id() -> str | None:
    return _request_id_ctx.get()


def set_user_id(user_id: str | None):
    return _user_id_ctx.set(user_id)


def get_user_id() -> str | None:
    return _user_id_ctx.get()


class RequestContextFilter(logging.Filter):
    """
    Attach `request_id` and `user_id` to every record.
    An explicit `extra={"request_id": ...}` wins over the context value.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = getattr(record, "request_id", None) or get_request_id() or "-"
        record.user_id = getattr(record, "user_id", None) or get_user_id() or "-"
        return True


class RedactFilter(logging.Filter):
    """
    Mask sensitive values carried in `extra`.
    """

    SENSITIVE = {"password", "secret", "token", "access_token", "refresh_token", "id_token", "authorization", "phone"}

    # conversation content may only appear in DEBUG records
    CONTENT = {"text", "body", "last_message", "initial_message"}

    def filter(self, record: LogRecord) -> bool:
        for key in list(record.__dict__.keys()):
            lowered = key.lower()
            if lowered in self.SENSITIVE:
                record.__dict__[key] = "***REDACTED***"
            elif lowered in self.CONTENT and record.levelno > logging.DEBUG:
                record.__dict__[key] = "***REDACTED***"
        return True
