"""
Dialect-aware INSERT ... ON CONFLICT DO NOTHING.

PostgreSQL runs in production, SQLite (aiosqlite) in the integration tests.
Both dialects support ON CONFLICT DO NOTHING with RETURNING, so a single
statement both inserts and tells the caller whether it won the race.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Base

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def dialect_insert(session: AsyncSession):
    """Return the dialect-specific insert() construct for session's bind."""
    dialect = session.get_bind().dialect.name
    try:
        return _INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(
            f"INSERT ... ON CONFLICT is not supported for dialect '{dialect}'"
        ) from None


async def insert_or_ignore(
    session: AsyncSession,
    model: type[Base],
    values: dict[str, Any],
    conflict_columns: list[str],
) -> UUID | None:
    """
    Insert a row unless it collides with the unique key on conflict_columns.

    Args:
        session: Session inside an open transaction
        model: ORM model with a UUID `id` primary key
        values: Mapped attribute values for the new row
        conflict_columns: Columns of the unique constraint to arbitrate on

    Returns:
        The new row's id, or None when a conflicting row already existed
    """
    insert = dialect_insert(session)
    # Attribute names can differ from column names (ScheduleEntry.entry_metadata)
    mapper = model.__mapper__
    row = {mapper.attrs[key].columns[0]: value for key, value in values.items()}
    stmt = (
        insert(model.__table__)
        .values(row)
        .on_conflict_do_nothing(index_elements=conflict_columns)
        .returning(model.__table__.c.id)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
