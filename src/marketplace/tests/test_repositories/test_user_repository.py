import pytest
import uuid
import datetime
from marketplace.exceptions.base import DuplicateError
from marketplace.models.user import User
from marketplace.repositories.user_repository import UserRepository


@pytest.mark.asyncio
class TestUserRepositoryCreate:
    """
    Tests covering creation of users through UserRepository.create_user().

    Rationale:
      - The UserRepository wraps BaseRepository.create() but also normalizes input:
          * strips name and firebase uid whitespace
          * removes formatting characters from phone numbers
          * lowercases and strips email, blank email becomes None
      - Unique constraints on firebase uid, phone and email produce DuplicateError.
    """

    async def test_create_user_success(self, user_repository: UserRepository, sample_user_data: dict):
        user = await user_repository.create_user(**sample_user_data)

        assert isinstance(user, User)
        assert isinstance(user.id, uuid.UUID)
        assert user.name == sample_user_data["name"]
        assert user.email == sample_user_data["email"]
        assert user.is_verified is True

        assert isinstance(user.created_at, datetime.datetime)
        assert isinstance(user.updated_at, datetime.datetime)

    async def test_create_user_normalizes_input(self, user_repository: UserRepository):
        """
        Behavior:
          - Name with surrounding whitespace, a formatted phone number and an uppercase email.
          - Expect all three to be stored in canonical form.
        """
        user = await user_repository.create_user(
            firebase_uid="  uid-alice  ",
            name="  Alice  ",
            phone="+254 (712) 345-678",
            email="  ALICE@Example.COM  ",
        )

        assert user.firebase_uid == "uid-alice"
        assert user.name == "Alice"
        assert user.phone == "+254712345678"
        assert user.email == "alice@example.com"

    async def test_blank_email_is_stored_as_null(self, user_repository: UserRepository, faker):
        """Two users without email must not collide on the unique email column."""
        first = await user_repository.create_user(faker.unique.uuid4(), "One", faker.unique.numerify("+2547########"), email="  ")
        second = await user_repository.create_user(faker.unique.uuid4(), "Two", faker.unique.numerify("+2547########"))

        assert first.email is None
        assert second.email is None

    async def test_create_user_duplicate_phone_raises(self, user_repository: UserRepository, faker):
        await user_repository.create_user(faker.unique.uuid4(), "One", "+254700000001")

        with pytest.raises(DuplicateError) as exc_info:
            # same number, different formatting
            await user_repository.create_user(faker.unique.uuid4(), "Two", "+254 700 000 001")

        assert exc_info.value.fields == ["phone"]


@pytest.mark.asyncio
class TestUserRepositoryRead:

    async def test_get_by_phone_normalizes_lookup(self, user_repository: UserRepository, created_user: User):
        found = await user_repository.get_by_phone(created_user.phone)
        assert found is not None and found.id == created_user.id

        assert await user_repository.get_by_phone("+1 555 000 0000") is None

    async def test_get_by_email_is_case_insensitive(self, user_repository: UserRepository, created_user: User):
        found = await user_repository.get_by_email(created_user.email.upper())
        assert found is not None and found.id == created_user.id

        assert await user_repository.get_by_email("   ") is None

    async def test_get_by_firebase_uid(self, user_repository: UserRepository, created_user: User):
        found = await user_repository.get_by_firebase_uid(created_user.firebase_uid)
        assert found is not None and found.id == created_user.id


@pytest.mark.asyncio
class TestUserRepositoryExistence:

    async def test_phone_and_email_exists_helpers(self, user_repository: UserRepository, created_user: User):
        assert await user_repository.phone_exists(created_user.phone) is True
        assert await user_repository.phone_exists("+19999999999") is False

        assert await user_repository.email_exists(created_user.email.upper()) is True
        assert await user_repository.email_exists("nobody@example.com") is False
        assert await user_repository.email_exists("") is False

    async def test_exists_by_id(self, user_repository: UserRepository, created_user: User):
        assert await user_repository.exists(created_user.id)
        assert not await user_repository.exists(uuid.uuid4())
