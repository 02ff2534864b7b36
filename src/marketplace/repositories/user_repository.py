"""
User repository: the identity lookups the messaging system consumes.

Accounts are created by the phone-verification flow upstream; `create_user` exists for
seeding and test fixtures.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
import logging

from marketplace.exceptions.base import InternalError
from marketplace.models.user import User
from marketplace.validators.normalizers import normalize_email, normalize_phone
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """
    Repository for User entity operations.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(User, db)

    # =================================================================================================================
    # Create Operations
    # =================================================================================================================

    async def create_user(
        self,
        firebase_uid: str,
        name: str,
        phone: str,
        email: str | None = None,
        profile_picture: str = "",
        is_verified: bool = True,
    ) -> User:
        """
        Create a user after normalizing phone and email.

        Raises:
            DuplicateError: If the firebase uid, phone or email is already registered
            InvalidInputError: If a required field is missing
        """
        logger.debug("user.create", extra={"firebase_uid": firebase_uid})

        return await self.create(
            firebase_uid=firebase_uid.strip(),
            name=name.strip(),
            phone=normalize_phone(phone),
            email=normalize_email(email),
            profile_picture=profile_picture or "",
            is_verified=is_verified,
        )

    # =================================================================================================================
    # Read Operations
    # =================================================================================================================

    async def get_by_phone(self, phone: str) -> User | None:
        return await self.find_by_field("phone", normalize_phone(phone))

    async def get_by_email(self, email: str) -> User | None:
        """
        Get a user by email (case-insensitive). Blank input returns None.
        """
        normalized = normalize_email(email)
        if normalized is None:
            return None
        return await self.find_by_field("email", normalized)

    async def get_by_firebase_uid(self, firebase_uid: str) -> User | None:
        return await self.find_by_field("firebase_uid", firebase_uid)

    # =================================================================================================================
    # Validation / Existence Checks
    # =================================================================================================================

    async def phone_exists(self, phone: str) -> bool:
        return await self._value_exists(User.phone, normalize_phone(phone))

    async def email_exists(self, email: str) -> bool:
        normalized = normalize_email(email)
        if normalized is None:
            return False
        return await self._value_exists(User.email, normalized)

    async def _value_exists(self, column, value) -> bool:
        try:
            result = await self.db.execute(select(User.id).where(column == value).limit(1))
            return result.scalar() is not None
        except SQLAlchemyError as e:
            logger.exception("user.exists_check.failed", extra={"column": column.key})
            raise InternalError("Failed to check user existence") from e
