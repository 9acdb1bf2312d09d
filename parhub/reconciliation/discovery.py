"""
Schema and column discovery over a legacy relational source.

Legacy table and column names were never documented and drift between
deployments, so migrations locate them by hint. Table lookup falls back to
substring containment; column lookup is exact (case-insensitive) only.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from sqlalchemy import column as sql_column
from sqlalchemy import func, inspect, select
from sqlalchemy import table as sql_table
from sqlalchemy.engine import Engine

from .errors import NotFoundError

logger = logging.getLogger(__name__)

# Bookkeeping tables never treated as legacy data.
IGNORED_TABLES = frozenset(
    {
        "pgmigrations",
        "pgmigrations_lock",
        "alembic_version",
        "schema_migrations",
        "reconcile_runs",
        "sqlite_sequence",
    }
)


class SchemaDiscovery:
    """Introspect one schema of an engine and locate tables/columns by hint."""

    def __init__(self, engine: Engine, schema: str | None = None, exclude: Iterable[str] = ()) -> None:
        self.engine = engine
        self.schema = schema
        self.exclude = frozenset(name.lower() for name in exclude)

    def list_tables(self) -> list[str]:
        """Return base tables, minus bookkeeping and excluded tables, sorted."""
        names = inspect(self.engine).get_table_names(schema=self.schema)
        return sorted(
            name
            for name in names
            if name.lower() not in IGNORED_TABLES and name.lower() not in self.exclude
        )

    def find_table_by_hint(self, hints: Sequence[str]) -> str | None:
        """
        Exact lowercase match across every hint first, then substring
        containment. Returns the first table matched or ``None``.
        """
        tables = self.list_tables()
        lowered = [name.lower() for name in tables]
        normalized_hints = [hint.lower() for hint in hints]

        for hint in normalized_hints:
            if hint in lowered:
                return tables[lowered.index(hint)]

        for name in tables:
            if any(hint in name.lower() for hint in normalized_hints):
                logger.warning(
                    "Legacy table %s matched hints %s by substring only",
                    name,
                    ", ".join(hints),
                )
                return name
        return None

    def require_table(self, hints: Sequence[str], kind: str = "table") -> str:
        """Like ``find_table_by_hint`` but raises ``NotFoundError`` on a miss."""
        name = self.find_table_by_hint(hints)
        if name is None:
            raise NotFoundError(kind, hints)
        return name

    def require_column(self, table_name: str, columns: Sequence[str], candidates: Sequence[str]) -> str:
        name = find_column(columns, candidates)
        if name is None:
            raise NotFoundError(
                "column",
                candidates,
                message=f"Legacy table {table_name} has no column matching {', '.join(candidates)}",
            )
        return name

    def fetch_columns(self, table_name: str) -> list[str]:
        """Return the table's column names in ordinal order."""
        return [column["name"] for column in inspect(self.engine).get_columns(table_name, schema=self.schema)]

    @staticmethod
    def find_column(columns: Sequence[str], candidates: Sequence[str]) -> str | None:
        """Return the first exact (case-insensitive) match from ``candidates``."""
        return find_column(columns, candidates)

    def _table(self, table_name: str, columns: Sequence[str] = ()):
        return sql_table(table_name, *(sql_column(name) for name in columns), schema=self.schema)

    def count_rows(self, table_name: str) -> int:
        statement = select(func.count()).select_from(self._table(table_name))
        with self.engine.connect() as connection:
            return int(connection.execute(statement).scalar_one())

    def fetch_rows(self, table_name: str, order_by: Sequence[str] = ()) -> list[dict[str, object]]:
        """
        Return every row of ``table_name`` as a dict keyed by column name.

        Identifiers are quoted by the dialect compiler. ``order_by`` entries
        not present on the table are ignored.
        """
        columns = self.fetch_columns(table_name)
        legacy_table = self._table(table_name, columns)
        statement = select(legacy_table)
        known = {name.lower(): name for name in columns}
        ordering = [known[name.lower()] for name in order_by if name and name.lower() in known]
        if ordering:
            statement = statement.order_by(*(legacy_table.c[name] for name in ordering))
        with self.engine.connect() as connection:
            return [dict(row) for row in connection.execute(statement).mappings()]

    def snapshot(self) -> dict[str, list[str]]:
        return {name: self.fetch_columns(name) for name in self.list_tables()}


def find_column(columns: Sequence[str], candidates: Sequence[str]) -> str | None:
    lowered = [str(column).lower() for column in columns]
    for candidate in candidates:
        key = str(candidate).lower()
        if key in lowered:
            return columns[lowered.index(key)]
    return None


class SchemaContext:
    """
    Cached ``{table: [columns]}`` map for the target database.

    Built once per process and passed explicitly to callers that need to know
    which optional columns exist. ``invalidate()`` drops the cache so the next
    read reloads; migrations call it after altering the schema. Migration
    steps reload through their own connection so uncommitted DDL is visible.
    """

    def __init__(self, engine: Engine, schema: str | None = None) -> None:
        self.engine = engine
        self.schema = schema
        self._tables: dict[str, list[str]] | None = None

    @property
    def loaded(self) -> bool:
        return self._tables is not None

    def reload(self, bind=None) -> dict[str, list[str]]:
        """Reflect the target schema, through ``bind`` when one is given."""
        inspector = inspect(bind if bind is not None else self.engine)
        tables: dict[str, list[str]] = {}
        for name in inspector.get_table_names(schema=self.schema):
            tables[name] = [column["name"] for column in inspector.get_columns(name, schema=self.schema)]
        self._tables = tables
        logger.debug("Schema context loaded %d tables", len(tables))
        return tables

    def invalidate(self) -> None:
        self._tables = None

    @property
    def tables(self) -> dict[str, list[str]]:
        if self._tables is None:
            return self.reload()
        return self._tables

    def has_table(self, table_name: str) -> bool:
        return table_name in self.tables

    def table_columns(self, table_name: str) -> frozenset[str]:
        return frozenset(self.tables.get(table_name, ()))

    def has_column(self, table_name: str, column_name: str) -> bool:
        return column_name in self.table_columns(table_name)
