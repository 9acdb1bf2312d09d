"""
Run summaries and ``ReconcileRun`` lifecycle helpers.

Every batch job prints a structured summary on both success and failure so
an operator can audit a run without re-querying the store.
"""

from __future__ import annotations

import logging
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from parhub.models import ReconcileRun, ReconcileRunKind, ReconcileRunStatus

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Mutable tally accumulated while a batch job runs."""

    name: str
    status: str = "running"
    counts: Counter = field(default_factory=Counter)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    run_id: int | None = None

    def incr(self, key: str, amount: int = 1) -> None:
        self.counts[key] += amount

    def warn(self, message: str, *args) -> None:
        rendered = message % args if args else message
        self.warnings.append(rendered)
        logger.warning(rendered, extra={"reconcile_step": self.name, "reconcile_run_id": self.run_id})

    def succeed(self) -> None:
        self.status = "succeeded"

    def fail(self, exc: BaseException) -> None:
        self.status = "failed"
        self.error = str(exc)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "run_id": self.run_id,
            "status": self.status,
            "counts": dict(sorted(self.counts.items())),
            "warnings": list(self.warnings),
            "error": self.error,
        }

    def format(self) -> str:
        lines = [f"{self.name} finished with status {self.status}" + (f" (run {self.run_id})" if self.run_id else "")]
        width = max((len(key) for key in self.counts), default=0)
        for key, value in sorted(self.counts.items()):
            lines.append(f"  {key.ljust(width)} : {value}")
        for message in self.warnings:
            lines.append(f"  warning: {message}")
        if self.error:
            lines.append(f"  error: {self.error}")
        return "\n".join(lines)


def start_run(session: Session, kind: ReconcileRunKind, source: str | None = None) -> ReconcileRun:
    run = ReconcileRun(
        kind=kind,
        status=ReconcileRunStatus.RUNNING,
        source=source,
        started_at=datetime.now(timezone.utc),
        counts_json={},
    )
    session.add(run)
    session.commit()
    return run


def finish_run(session: Session, run_id: int, summary: RunSummary) -> ReconcileRun | None:
    """
    Persist the outcome of a run. Called after the work transaction has been
    committed or rolled back, so it always opens a fresh one.
    """
    run = session.get(ReconcileRun, run_id)
    if run is None:
        logger.error("Reconcile run %s disappeared before it could be finalized", run_id)
        return None
    run.status = ReconcileRunStatus.SUCCEEDED if summary.status == "succeeded" else ReconcileRunStatus.FAILED
    run.finished_at = datetime.now(timezone.utc)
    run.counts_json = summary.to_dict()
    run.error_summary = summary.error
    session.commit()
    return run


@contextmanager
def tracked_run(session: Session, kind: ReconcileRunKind, summary: RunSummary, source: str | None = None):
    """
    Wrap a batch job in a ``ReconcileRun``. The job commits its own work; on
    error the session is rolled back, the run is marked failed and the error
    propagates.
    """
    run = start_run(session, kind, source)
    summary.run_id = run.id
    try:
        yield summary
    except Exception as exc:
        session.rollback()
        summary.fail(exc)
        logger.error("%s failed: %s", summary.name, exc, extra={"reconcile_run_id": summary.run_id})
        finish_run(session, summary.run_id, summary)
        raise
    summary.succeed()
    finish_run(session, summary.run_id, summary)
