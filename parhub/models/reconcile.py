"""
Bookkeeping tables for reconciliation batch runs and applied migrations.

Both tables are internal and never treated as legacy sources by discovery.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, db, utcnow


class ReconcileRunKind(str, enum.Enum):
    MIGRATION = "migration"
    CUSTOMER_IMPORT = "customer_import"
    EVENT_IMPORT = "event_import"
    PHONE_REPAIR = "phone_repair"


class ReconcileRunStatus(str, enum.Enum):
    """Lifecycle states for a reconciliation run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ReconcileRun(BaseModel):
    """Metadata describing a single reconciliation batch execution."""

    __tablename__ = "reconcile_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[ReconcileRunKind] = mapped_column(
        Enum(ReconcileRunKind, name="reconcile_run_kind_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    status: Mapped[ReconcileRunStatus] = mapped_column(
        Enum(ReconcileRunStatus, name="reconcile_run_status_enum", native_enum=False),
        nullable=False,
        default=ReconcileRunStatus.PENDING,
        index=True,
    )
    source: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    __table_args__ = (Index("idx_reconcile_runs_kind_status", "kind", "status"),)

    def __repr__(self):
        return f"<ReconcileRun {self.id} {self.kind} {self.status}>"


class SchemaMigration(db.Model):
    """A migration version that has been applied and verified."""

    __tablename__ = "schema_migrations"

    version: Mapped[str] = mapped_column(db.String(100), primary_key=True)
    applied_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    summary_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    def __repr__(self):
        return f"<SchemaMigration {self.version}>"
