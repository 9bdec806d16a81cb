"""Dialect-aware INSERT .. ON CONFLICT helpers (SQLite and PostgreSQL)."""
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def _insert(db: AsyncSession, model):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"upsert not supported for dialect {dialect!r}")


async def upsert(
    db: AsyncSession,
    model,
    values: dict,
    index_elements: list[str],
    update_columns: list[str],
    where=None,
) -> bool:
    """Insert `values`, or overwrite `update_columns` of the row with the same key.

    With `where`, an existing row is only overwritten when it matches. Returns
    False when the existing row did not match and nothing was written.
    """
    stmt = _insert(db, model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_={col: stmt.excluded[col] for col in update_columns},
        where=where,
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def insert_if_absent(db: AsyncSession, model, values: dict, index_elements: list[str]) -> bool:
    """Insert `values` unless a row with the same key exists. True if a row was written."""
    stmt = _insert(db, model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    result = await db.execute(stmt)
    return result.rowcount == 1
