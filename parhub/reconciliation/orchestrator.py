"""
Runs registered migrations in order and records each outcome.

Every step commits on success and rolls back on error. A migration is marked
applied in ``schema_migrations`` only after all of its steps, verification
included, have committed, so a failed migration is retried in full next
time. Execution is synchronous and sequential.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable

from flask import current_app
from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from parhub.models import ReconcileRun, ReconcileRunKind, SchemaMigration, db

from .discovery import SchemaContext, SchemaDiscovery
from .errors import MigrationNotFound
from .migrations import MIGRATIONS, MIGRATIONS_BY_VERSION, Migration, MigrationContext
from .runtime import get_legacy_discovery, get_schema_context
from .schema_ops import ensure_table
from .summary import RunSummary, finish_run, start_run

logger = logging.getLogger(__name__)


class MigrationOrchestrator:
    def __init__(
        self,
        session: Session,
        legacy_engine: Engine,
        *,
        legacy_schema: str | None = None,
        context: SchemaContext | None = None,
        batch_size: int = 500,
        exclude_tables: Iterable[str] = (),
        migrations: Iterable[Migration] = MIGRATIONS,
    ) -> None:
        self.session = session
        self.legacy = SchemaDiscovery(legacy_engine, schema=legacy_schema, exclude=exclude_tables)
        self.context = context or SchemaContext(session.get_bind())
        self.batch_size = batch_size
        self.migrations = tuple(migrations)
        self._by_version = {migration.version: migration for migration in self.migrations}
        self.last_summary: RunSummary | None = None
        self.summaries: list[RunSummary] = []

    @contextmanager
    def _transaction(self):
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def ensure_bookkeeping(self) -> None:
        with self._transaction():
            for model in (SchemaMigration, ReconcileRun):
                ensure_table(self.session.connection(), model)
        self.context.invalidate()

    def applied_versions(self) -> set[str]:
        self.ensure_bookkeeping()
        return set(self.session.scalars(select(SchemaMigration.version)).all())

    def pending(self) -> list[Migration]:
        applied = self.applied_versions()
        return [migration for migration in self.migrations if migration.version not in applied]

    def run_migration(self, version: str) -> RunSummary:
        """
        Apply one migration; already-applied versions are skipped.

        A failing step, verification included, is recorded on the
        ``ReconcileRun`` row and then re-raised. The summary of the last
        attempt stays on ``last_summary``.
        """
        migration = self._by_version.get(version) or MIGRATIONS_BY_VERSION.get(version)
        if migration is None:
            raise MigrationNotFound(version)

        summary = RunSummary(name=f"migration {version}")
        self.last_summary = summary
        if version in self.applied_versions():
            logger.info("Migration %s already applied; skipping", version)
            summary.status = "skipped"
            summary.incr("already_applied")
            return summary

        run = start_run(self.session, ReconcileRunKind.MIGRATION, source=version)
        summary.run_id = run.id
        ctx = MigrationContext(
            session=self.session,
            legacy=self.legacy,
            schema=self.context,
            summary=summary,
            batch_size=self.batch_size,
        )
        logger.info("Applying migration %s: %s", version, migration.description)

        try:
            for step in migration.steps:
                with self._transaction():
                    step.run(ctx)
                self.context.invalidate()
                summary.incr("steps_completed")
                logger.info("Migration %s step %s committed", version, step.name)

            summary.succeed()
            with self._transaction():
                self.session.add(SchemaMigration(version=version, summary_json=summary.to_dict()))
        except Exception as exc:
            summary.fail(exc)
            logger.error("Migration %s failed: %s", version, exc, extra={"reconcile_run_id": run.id})
            finish_run(self.session, summary.run_id, summary)
            raise
        finish_run(self.session, summary.run_id, summary)
        return summary

    def run_all(self) -> list[RunSummary]:
        """Apply every pending migration in order; the first failure propagates."""
        self.summaries = []
        for migration in self.pending():
            self.summaries.append(self.run_migration(migration.version))
        return self.summaries


def build_orchestrator(app=None, session: Session | None = None) -> MigrationOrchestrator:
    """Orchestrator wired to the app's target session and legacy source."""
    app = app or current_app
    legacy = get_legacy_discovery(app)
    return MigrationOrchestrator(
        session or db.session,
        legacy.engine,
        legacy_schema=legacy.schema,
        context=get_schema_context(app),
        batch_size=app.config.get("RECONCILE_BATCH_SIZE", 500),
        exclude_tables=legacy.exclude,
    )
