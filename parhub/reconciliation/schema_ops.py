"""
Additive DDL helpers used by migrations.

Tables and columns are created only when missing, so every helper is safe to
re-run against a target that is already up to date.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import inspect, literal, text
from sqlalchemy.engine import Connection

from .discovery import SchemaContext

logger = logging.getLogger(__name__)


def _loaded(context: SchemaContext, connection: Connection) -> SchemaContext:
    if not context.loaded:
        context.reload(connection)
    return context


def ensure_table(connection: Connection, model, context: SchemaContext | None = None) -> bool:
    """Create ``model``'s table if it does not exist. Returns True when created."""
    table = model.__table__
    if context is not None:
        exists = _loaded(context, connection).has_table(table.name)
    else:
        exists = inspect(connection).has_table(table.name, schema=table.schema)
    if exists:
        return False
    table.create(connection)
    if context is not None:
        context.invalidate()
    logger.info("Created table %s", table.name)
    return True


def _column_ddl(connection: Connection, column) -> str:
    dialect = connection.dialect
    preparer = dialect.identifier_preparer
    parts = [preparer.quote(column.name), column.type.compile(dialect=dialect)]

    default = column.default.arg if column.default is not None and column.default.is_scalar else None
    if default is not None:
        rendered = literal(default, column.type).compile(dialect=dialect, compile_kwargs={"literal_binds": True})
        parts.append(f"DEFAULT {rendered}")
        if not column.nullable:
            parts.append("NOT NULL")
    return " ".join(parts)


def ensure_columns(
    connection: Connection,
    model,
    column_names: Iterable[str],
    context: SchemaContext | None = None,
) -> list[str]:
    """
    Add any of ``column_names`` missing from ``model``'s table using the
    model's column definitions. Returns the names that were added.

    Added NOT NULL columns must carry a scalar default; everything else is
    added nullable.
    """
    table = model.__table__
    if context is not None:
        existing = set(_loaded(context, connection).table_columns(table.name))
    else:
        existing = {column["name"] for column in inspect(connection).get_columns(table.name, schema=table.schema)}
    preparer = connection.dialect.identifier_preparer
    qualified = preparer.format_table(table)

    added: list[str] = []
    for name in column_names:
        if name in existing:
            continue
        column = table.c[name]
        connection.execute(text(f"ALTER TABLE {qualified} ADD COLUMN {_column_ddl(connection, column)}"))
        added.append(name)

    if added and context is not None:
        context.invalidate()
    if added:
        logger.info("Added columns to %s: %s", table.name, ", ".join(added))
    return added


def ensure_unique_index(connection: Connection, model, column_name: str, index_name: str) -> None:
    table = model.__table__
    preparer = connection.dialect.identifier_preparer
    connection.execute(
        text(
            f"CREATE UNIQUE INDEX IF NOT EXISTS {preparer.quote(index_name)} "
            f"ON {preparer.format_table(table)} ({preparer.quote(column_name)})"
        )
    )
