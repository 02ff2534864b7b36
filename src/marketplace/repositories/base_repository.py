"""
Base repository class providing common database operations.

Repositories never commit. They flush inside the caller's transaction so that a
service can compose several repository calls into one unit of work and commit (or roll
back) them together.
"""
from marketplace.exceptions.base import (
    DuplicateError,
    InternalError,
    InvalidFieldError,
    InvalidInputError,
    NotFoundError,
)
from marketplace.exceptions.mapper import db_error_handler
from marketplace.validators.exception_validators import (
    find_unknown_model_kwargs,
    get_required_columns,
    find_unique_conflicts,
)

import time
from typing import TypeVar, Generic, Type, Any
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
import logging

from marketplace.database.base import Base

# Type variable for the model class
ModelType = TypeVar("ModelType", bound=Base)

logger = logging.getLogger(__name__)


class BaseRepository(Generic[ModelType]):
    """
    Generic base repository providing common create/read operations.

    Type Parameters:
        ModelType: The SQLAlchemy model class this repository manages.
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        """
        Args:
            model: The SQLAlchemy model class (not an instance), e.g. User
            db: The async session of the current unit of work
        """
        self.model = model
        self.db = db

    @property
    def model_name(self) -> str:
        return self.model.__name__

    # =================================================================================================================
    # Create
    # =================================================================================================================

    async def create(self, **kwargs) -> ModelType:
        """
        Create an entity with validation + DB write. Logging:
        - DEBUG: start event with model name and provided keys (not values).
        - INFO: expected domain errors (invalid fields, missing required, duplicate).
        - INFO: success event with created id and duration_ms.
        """
        logger.debug(
            "repo.create.start",
            extra={
                "model": self.model_name,
                "operation": "create",
                "provided_keys": sorted(kwargs.keys()),
            },
        )

        unknown = find_unknown_model_kwargs(self.model, kwargs)
        if unknown:
            logger.info(
                "repo.create.invalid_fields",
                extra={"model": self.model_name, "operation": "create", "invalid_fields": sorted(unknown)},
            )
            raise InvalidFieldError(f"Unknown field(s) for {self.model_name}: {', '.join(unknown)}", fields=unknown)

        # NOT NULL columns without a default must be present and not None
        missing = [c for c in get_required_columns(self.model) if kwargs.get(c) is None]
        if missing:
            logger.info(
                "repo.create.missing_required",
                extra={"model": self.model_name, "operation": "create", "missing_fields": sorted(missing)},
            )
            raise InvalidInputError(
                f"Missing required field(s): {', '.join(missing)} for {self.model_name}", fields=missing
            )

        # best-effort; the unique constraints still decide
        conflicts = await find_unique_conflicts(self.db, self.model, kwargs)
        if conflicts:
            logger.info(
                "repo.create.duplicate_precheck",
                extra={"model": self.model_name, "operation": "create", "conflict_fields": sorted(conflicts)},
            )
            raise DuplicateError(
                f"{self.model_name} already exists for field(s): {', '.join(sorted(conflicts))}",
                fields=sorted(conflicts),
            )

        start = time.perf_counter()

        async with db_error_handler(self.db, self.model_name):
            entity = self.model(**kwargs)
            self.db.add(entity)
            await self.db.flush()
            await self.db.refresh(entity)

        logger.info(
            "repo.create.success",
            extra={
                "model": self.model_name,
                "operation": "create",
                "id": str(getattr(entity, "id", "")),
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return entity

    # =================================================================================================================
    # Read
    # =================================================================================================================

    async def get_by_id(self, entity_id: UUID) -> ModelType | None:
        """
        Get an entity by its ID, or None.

        Raises:
            InternalError: If the query fails.
        """
        try:
            result = await self.db.execute(select(self.model).where(self.model.id == entity_id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.exception("repo.get_by_id.failed", extra={"model": self.model_name, "id": str(entity_id)})
            raise InternalError(f"Failed to retrieve {self.model_name}") from e

    async def get_by_id_or_raise(self, entity_id: UUID) -> ModelType:
        """
        Get an entity by its ID or raise NotFoundError.
        """
        entity = await self.get_by_id(entity_id)
        if entity is None:
            raise NotFoundError(f"{self.model_name} with ID {entity_id} not found")
        return entity

    async def find_by_field(self, field: str, value: Any) -> ModelType | None:
        """
        Find a single entity by any mapped field.

        Raises:
            InvalidFieldError: If the field does not exist on the model.
            InternalError: If the query fails.
        """
        if find_unknown_model_kwargs(self.model, {field: value}):
            raise InvalidFieldError(f"{self.model_name} has no field '{field}'", fields=[field])

        try:
            result = await self.db.execute(select(self.model).where(getattr(self.model, field) == value))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.exception("repo.find_by_field.failed", extra={"model": self.model_name, "field": field})
            raise InternalError(f"Failed to find {self.model_name}") from e

    async def _execute(self, stmt, operation: str):
        """
        Run a read statement, turning driver failures into InternalError.
        Writes go through `db_error_handler` instead so integrity errors are classified.
        """
        try:
            return await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.exception("repo.query.failed", extra={"model": self.model_name, "operation": operation})
            raise InternalError(f"Failed to {operation.replace('_', ' ')}") from e

    # =================================================================================================================
    # Existence / Count
    # =================================================================================================================

    async def exists(self, entity_id: UUID) -> bool:
        """
        Check if an entity exists by its ID (selects the id column only).
        """
        try:
            result = await self.db.execute(select(self.model.id).where(self.model.id == entity_id))
            return result.scalar() is not None
        except SQLAlchemyError as e:
            logger.exception("repo.exists.failed", extra={"model": self.model_name, "id": str(entity_id)})
            raise InternalError(f"Failed to check {self.model_name} existence") from e

    async def count(self, **filters: Any) -> int:
        """
        Count entities matching equality filters. Unknown fields and None values are skipped.

        Example:
            await message_repo.count(conversation_id=cid, is_read=False)
        """
        query = select(func.count()).select_from(self.model)
        for field, value in filters.items():
            if hasattr(self.model, field) and value is not None:
                query = query.where(getattr(self.model, field) == value)

        try:
            result = await self.db.execute(query)
            return result.scalar() or 0
        except SQLAlchemyError as e:
            logger.exception("repo.count.failed", extra={"model": self.model_name})
            raise InternalError(f"Failed to count {self.model_name} entities") from e
