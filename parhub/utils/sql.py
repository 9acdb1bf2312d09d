"""
Dialect helpers for insert-or-update statements.

PostgreSQL and SQLite both support ``INSERT .. ON CONFLICT``; SQLAlchemy
exposes it through dialect-specific ``insert`` constructs.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_insert(session: Session, table):
    """Return the ``insert()`` construct matching the session's dialect."""
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upserts are not supported for dialect '{dialect_name}'")


def upsert(
    session: Session,
    table,
    values: Mapping[str, object],
    *,
    index_elements: Iterable[str],
    update_columns: Iterable[str] | None = None,
):
    """
    Insert ``values`` or update the conflicting row keyed by ``index_elements``.

    When ``update_columns`` is empty the conflicting row is left untouched
    (``DO NOTHING``). Returns the execution result; ``rowcount`` is 1 when a
    row was written.
    """
    statement = dialect_insert(session, table).values(**values)
    index_elements = list(index_elements)
    if update_columns is None:
        update_columns = [key for key in values if key not in index_elements]
    update_columns = list(update_columns)
    if update_columns:
        statement = statement.on_conflict_do_update(
            index_elements=index_elements,
            set_={column: statement.excluded[column] for column in update_columns},
        )
    else:
        statement = statement.on_conflict_do_nothing(index_elements=index_elements)
    return session.execute(statement)
