# marketplace/api/v1/error_handlers.py
"""
FastAPI exception handlers that map application exceptions to HTTP responses.

Services and repositories raise marketplace.exceptions.base.* exceptions; the mapping to
status codes lives on the exception classes (`http_status()`), the JSON body comes from
`to_payload()`:

    {"status": "error", "detail": "...", "code": "forbidden", "fields": [...]}
"""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
from marketplace.exceptions.base import (
    RepositoryError,
    DuplicateError,
    ForbiddenError,
    InternalError,
    InvalidInputError,
    InvalidFieldError,
    NotFoundError,
    UnauthenticatedError,
)

logger = logging.getLogger(__name__)


# Most specific first. The handlers stay tiny; mapping is centralized in the exception classes.

async def duplicate_error_handler(request: Request, exc: DuplicateError) -> JSONResponse:
    """
    409 Conflict for duplicates.
    """
    logger.info("DuplicateError for %s %s: fields=%s", request.method, request.url.path, exc.fields)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def invalid_input_handler(request: Request, exc: InvalidInputError | InvalidFieldError) -> JSONResponse:
    """
    422 Unprocessable Entity for empty text, unknown kinds, unknown fields.
    """
    logger.info("%s for %s %s: fields=%s", type(exc).__name__, request.method, request.url.path, exc.fields)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """
    404 Not Found.
    """
    logger.info("NotFoundError for %s %s: fields=%s", request.method, request.url.path, exc.fields)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def access_error_handler(request: Request, exc: ForbiddenError | UnauthenticatedError) -> JSONResponse:
    """
    401 without a requester identity, 403 for a requester who is not allowed.
    """
    logger.info("%s for %s %s", type(exc).__name__, request.method, request.url.path)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def repository_error_handler(request: Request, exc: RepositoryError) -> JSONResponse:
    """
    Fallback for other application errors -> code-defined status (400 by default).
    Keep the message user-friendly; do not include DB internals.
    """
    logger.warning("RepositoryError for %s %s: %s", request.method, request.url.path, str(exc))
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Malformed bodies, path ids and query strings, rendered in the same envelope.
    """
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    logger.info("RequestValidationError for %s %s: fields=%s", request.method, request.url.path, fields)
    error = InvalidInputError("Invalid request", fields=fields)
    return JSONResponse(status_code=error.http_status(), content=error.to_payload())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Anything that escaped the taxonomy: opaque 500, full stack in the logs.
    """
    logger.exception("Unhandled error for %s %s", request.method, request.url.path)
    error = InternalError()
    return JSONResponse(status_code=error.http_status(), content=error.to_payload())


# Helper to register all handlers on an app (called from create_app)
def register_exception_handlers(app):
    app.add_exception_handler(DuplicateError, duplicate_error_handler)
    app.add_exception_handler(InvalidInputError, invalid_input_handler)
    app.add_exception_handler(InvalidFieldError, invalid_input_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ForbiddenError, access_error_handler)
    app.add_exception_handler(UnauthenticatedError, access_error_handler)
    app.add_exception_handler(RepositoryError, repository_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
