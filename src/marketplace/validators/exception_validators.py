"""
Pre-write checks used by BaseRepository.create().

These give callers a precise error (which field is unknown, missing or already taken)
before the database has a chance to reject the row. The database constraints stay the
source of truth; the checks here are best-effort.
"""

from typing import Iterable

from sqlalchemy import UniqueConstraint, and_, inspect as sa_inspect, select


def find_unknown_model_kwargs(model, kwargs: dict) -> list[str]:
    """
    Return the keys of `kwargs` that are not mapped attributes of `model`.
    """
    allowed = {attr.key for attr in sa_inspect(model).attrs}
    return [key for key in kwargs if key not in allowed]


def get_required_columns(model) -> list[str]:
    """
    Columns that are NOT NULL, have no client/server default and are not auto PKs.
    """
    required = []
    for col in model.__table__.columns:
        has_default = col.default is not None or col.server_default is not None
        is_auto_pk = col.primary_key and col.autoincrement in (True, "auto")
        if not col.nullable and not has_default and not is_auto_pk:
            required.append(col.name)
    return required


def get_unique_column_sets(model) -> list[Iterable[str]]:
    """
    Every unique column set on the table: Column(unique=True), UniqueConstraint and unique Index.
    """
    table = model.__table__
    unique_sets: list[Iterable[str]] = [[col.name] for col in table.columns if col.unique]
    unique_sets += [
        [c.name for c in constraint.columns]
        for constraint in table.constraints
        if isinstance(constraint, UniqueConstraint)
    ]
    unique_sets += [[c.name for c in idx.columns] for idx in table.indexes if idx.unique]
    return unique_sets


async def find_unique_conflicts(db, model, kwargs: dict) -> set[str]:
    """
    Query for existing rows that would collide with `kwargs` on any unique column set.
    Only sets fully present in `kwargs` (and not None) are checked.
    """
    conflicts: set[str] = set()

    for cols in get_unique_column_sets(model):
        if not all(kwargs.get(c) is not None for c in cols):
            continue

        stmt = select(model).where(and_(*(getattr(model, c) == kwargs[c] for c in cols))).limit(1)
        existing = (await db.execute(stmt)).scalars().first()
        if existing is not None:
            conflicts.update(cols)

    return conflicts
