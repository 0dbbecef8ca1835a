"""Dialect-aware ``INSERT ... ON CONFLICT DO NOTHING``."""

from __future__ import annotations

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def insert_or_ignore(
    session: AsyncSession,
    model: type,
    values: dict,
    conflict_columns: list[str],
) -> bool:
    """Insert a row unless one already exists for ``conflict_columns``.

    Returns True when this call created the row. The existence check and the
    write are a single statement, so concurrent callers cannot both win.
    """
    dialect = session.get_bind().dialect.name
    insert_factory = _DIALECT_INSERTS.get(dialect)
    if insert_factory is None:
        raise RuntimeError(f"insert_or_ignore does not support dialect {dialect!r}")

    statement = (
        insert_factory(model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=conflict_columns)
    )
    result = await session.execute(statement)
    return result.rowcount == 1
