"""
Request-scoped dependencies for the v1 routes.
"""

from uuid import UUID

from fastapi import Header, Request

from marketplace.core.logging.filters import set_user_id
from marketplace.exceptions.base import UnauthenticatedError
from marketplace.services.messaging_service import MessagingService


async def get_requester_id(x_user_id: str | None = Header(default=None, alias="X-User-ID")) -> UUID:
    """
    The authenticated user, as resolved by the upstream auth gateway.

    The gateway verifies the bearer token and forwards the user id in `X-User-ID`;
    this service trusts the header and only checks that it is a well-formed id.
    """
    if not x_user_id:
        raise UnauthenticatedError()
    try:
        requester_id = UUID(x_user_id.strip())
    except ValueError:
        raise UnauthenticatedError("Malformed X-User-ID header") from None

    set_user_id(str(requester_id))
    return requester_id


def get_messaging_service(request: Request) -> MessagingService:
    return request.app.state.messaging_service
