import re
import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .integrity_classifier import (
    classify_integrity_error,
    UniqueConstraintError,
    NotNullConstraintError,
    ForeignKeyConstraintError,
    CheckConstraintError,
)
from .base import DuplicateError, InternalError, InvalidInputError, NotFoundError, RepositoryError

logger = logging.getLogger(__name__)

# -----------------------
# Column extraction helpers
# -----------------------

_SQLITE_CONSTRAINT = re.compile(r'(?:UNIQUE|NOT NULL) constraint failed: (?P<cols>.+)$', flags=re.IGNORECASE)
_PG_NOT_NULL = re.compile(r'null value in column "(?P<col>[^"]+)"', flags=re.IGNORECASE)
_PG_KEY = re.compile(r'key \((?P<cols>[^)]+)\)=', flags=re.IGNORECASE)


def _extract_columns_postgres(msg: str) -> list[str] | None:
    """
    Try to extract involved column names from common Postgres messages:
      - 'null value in column "body" violates not-null constraint'
      - 'DETAIL:  Key (product_id, participant_low_id, participant_high_id)=(...) already exists.'
    """
    m = _PG_NOT_NULL.search(msg)
    if m:
        return [m.group("col")]

    m = _PG_KEY.search(msg)
    if m:
        return [c.strip().strip('"') for c in m.group("cols").split(",")]

    return None


def _extract_columns_sqlite(msg: str) -> list[str] | None:
    # 'UNIQUE constraint failed: conversations.product_id, conversations.participant_low_id, ...'
    m = _SQLITE_CONSTRAINT.search(msg)
    if m:
        return [c.split('.')[-1].strip() for c in re.split(r',\s*', m.group("cols"))]
    return None


def extract_columns_from_integrity(exc: IntegrityError) -> list[str] | None:
    """
    Best-effort extraction of column names from the DB message (Postgres, SQLite).
    """
    orig = exc.orig
    msg = str(orig) if orig is not None else str(exc)
    if not msg:
        return None

    return _extract_columns_postgres(msg) or _extract_columns_sqlite(msg)


# -----------------------
# Mapper
# -----------------------

def raise_mapped_integrity_error(exc: IntegrityError, model_name: str | None = None) -> None:
    """
    Map a SQLAlchemy IntegrityError to an app-level exception and raise it.
    Populates `.fields` and `.constraint` where possible.
    """
    exc_cls, constraint_name = classify_integrity_error(exc)
    columns = extract_columns_from_integrity(exc)

    model_part = model_name or "Record"
    context = {"model": model_part, "fields": columns, "constraint": constraint_name}

    if exc_cls is UniqueConstraintError:
        # expected under concurrency; callers such as find_or_create recover from it
        logger.info("mapper.duplicate_detected", extra=context)
        if columns:
            raise DuplicateError(
                f"{model_part} already exists for field(s): {', '.join(columns)}",
                fields=columns, constraint=constraint_name,
            ) from exc
        raise DuplicateError(f"{model_part} already exists (unique constraint)", constraint=constraint_name) from exc

    if exc_cls is NotNullConstraintError:
        logger.info("mapper.not_null_violation", extra=context)
        if columns:
            raise InvalidInputError(
                f"Missing required field(s): {', '.join(columns)} for {model_part}", fields=columns
            ) from exc
        raise InvalidInputError(f"Missing required field for {model_part}") from exc

    if exc_cls is ForeignKeyConstraintError:
        logger.info("mapper.foreign_key_violation", extra=context)
        raise NotFoundError(f"{model_part} references an entity that does not exist", fields=columns) from exc

    if exc_cls is CheckConstraintError:
        logger.debug(
            "mapper.check_constraint_failure",
            extra={**context, "raw": str(exc.orig) if exc.orig is not None else str(exc)},
        )
        raise RepositoryError(
            f"{model_part} business rule violated (check constraint).", constraint=constraint_name
        ) from exc

    logger.warning("mapper.unknown_integrity_error", extra={"model": model_part, "constraint": constraint_name})
    logger.debug("mapper.unknown_integrity_raw", extra={"model": model_part, "raw": str(exc.orig)})
    raise InternalError(f"{model_part} database integrity error.", constraint=constraint_name) from exc


# -----------------------
# Async context manager to DRY error handling in repositories
# -----------------------
@asynccontextmanager
async def db_error_handler(db: AsyncSession, model_name: str | None = None):
    """
    Usage:
        async with db_error_handler(self.db, self.model.__name__):
            ... DB ops that may raise IntegrityError ...

    The block runs inside a SAVEPOINT. A failure rolls back only the savepoint, so the
    caller's unit of work stays usable (find_or_create re-reads the winning row after a
    unique violation within the same transaction).

    Raises:
        DuplicateError / InvalidInputError / NotFoundError / RepositoryError for integrity errors.
        InternalError for any other SQLAlchemy failure.
    """
    try:
        async with db.begin_nested():
            yield
    except IntegrityError as exc:
        raise_mapped_integrity_error(exc, model_name)
    except RepositoryError:
        raise
    except SQLAlchemyError as exc:
        logger.exception("Unexpected DB error for %s", model_name, extra={"model": model_name})
        raise InternalError(f"Failed to operate on {model_name or 'database'}") from exc
