"""
Calendar export import.

Every event is kept. Identity is resolved VIN-first from the row's fields and
free text; events that resolve to nobody are stored with null links. Rows
without an explicit id get a deterministic one so re-importing the same export
inserts nothing new.
"""

from __future__ import annotations

import logging
from hashlib import sha256
from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy.orm import Session

from parhub.models import CustomerEvent, ReconcileRunKind, db
from parhub.utils.sql import upsert

from .accessor import RowAccessor
from .contracts import CALENDAR_EVENT_CONTRACT, EVENT_ID_NAME_SYNONYMS, EVENT_ID_PHONE_SYNONYMS
from .identity import CustomerIndex, IdentityRecord, IdentityResolver
from .phone import phone_key
from .summary import RunSummary, tracked_run
from .values import clean_text, coerce_datetime

logger = logging.getLogger(__name__)

EVENT_SOURCE = "calendar_import"


def derive_event_id(event_date, title: str | None, phone_e164: str | None, name: str | None) -> str:
    """SHA-256 of ``date|title|phone|name`` with missing parts as empty strings."""
    date_part = event_date.isoformat() if event_date is not None else ""
    key = f"{date_part}|{title or ''}|{phone_e164 or ''}|{name or ''}"
    return sha256(key.encode("utf-8")).hexdigest()


class EventImporter:
    def __init__(self, session: Session, summary: RunSummary, *, batch_size: int = 500) -> None:
        self.session = session
        self.summary = summary
        self.batch_size = batch_size
        self.resolver = IdentityResolver(CustomerIndex.build(session))

    def import_row(self, row: Mapping[str, object]) -> None:
        summary = self.summary
        values = CALENDAR_EVENT_CONTRACT.project(row)
        event_date = coerce_datetime(values.get("event_date"))
        title = clean_text(values.get("title"))
        description = clean_text(values.get("description"))
        if event_date is None and not title and not description:
            summary.incr("rows_skipped")
            return

        resolution = self.resolver.resolve(
            IdentityRecord(
                email=values.get("email"),
                phone=values.get("phone"),
                full_name=values.get("name"),
                vin=values.get("vin"),
                title=title,
                notes=description,
                services=values.get("services"),
                free_text=tuple(value for value in (values.get("location"),) if value),
            )
        )
        if resolution.ambiguous:
            summary.incr("ambiguous_rows")

        accessor = RowAccessor(row)
        legacy_event_id = clean_text(values.get("event_id")) or derive_event_id(
            event_date,
            title,
            phone_key(accessor.get(EVENT_ID_PHONE_SYNONYMS)),
            clean_text(accessor.get(EVENT_ID_NAME_SYNONYMS)),
        )

        result = upsert(
            self.session,
            CustomerEvent.__table__,
            {
                "legacy_event_id": legacy_event_id,
                "customer_id": resolution.customer_id,
                "vehicle_vin": resolution.vehicle_vin,
                "event_date": event_date,
                "title": title[:500] if title else None,
                "description": description,
                "source": EVENT_SOURCE,
                "matched_by": resolution.matched_by,
            },
            index_elements=["legacy_event_id"],
            update_columns=[],
        )
        if not result.rowcount:
            summary.incr("events_already_imported")
            return

        summary.incr("events_imported")
        if resolution.vehicle_vin:
            summary.incr("linked_to_vehicle")
        elif resolution.customer_id is not None:
            summary.incr("linked_to_customer_only")
        else:
            summary.incr("unlinked_events")
        if resolution.matched_by:
            summary.incr(f"matched_by_{resolution.matched_by}")

    def run(self, rows: Iterable[Mapping[str, object]]) -> RunSummary:
        for position, row in enumerate(rows, start=1):
            self.summary.incr("rows_processed")
            self.import_row(row)
            if position % self.batch_size == 0:
                self.session.flush()
        self.session.commit()
        return self.summary


def import_events(
    rows: Iterable[Mapping[str, object]],
    *,
    session: Session | None = None,
    source: str | None = None,
    summary: RunSummary | None = None,
    batch_size: int | None = None,
) -> RunSummary:
    """Import calendar export rows inside a tracked run."""
    session = session or db.session
    summary = summary or RunSummary(name="event import")
    batch_size = batch_size or current_app.config.get("RECONCILE_BATCH_SIZE", 500)

    with tracked_run(session, ReconcileRunKind.EVENT_IMPORT, summary, source=source):
        EventImporter(session, summary, batch_size=batch_size).run(rows)
    return summary
