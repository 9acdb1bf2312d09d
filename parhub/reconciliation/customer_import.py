"""
Customer export import (one row per customer with optional vehicle columns).

Each row is resolved through the identity chain. A matched customer takes
the row's non-empty values and keeps everything the row leaves blank; an
unmatched row creates a customer that later rows in the same file resolve
to. The row's vehicle is upserted by VIN.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy.orm import Session

from parhub.models import Customer, ReconcileRunKind, db

from .contracts import CUSTOMER_EXPORT_CONTRACT
from .dealer import recompute_dealer_flags
from .identity import CustomerIndex, IdentityRecord, IdentityResolver, normalize_legacy_id
from .phone import is_placeholder_phone, normalize_phone
from .summary import RunSummary, tracked_run
from .values import clean_text, coerce_bool, coerce_datetime
from .vehicles import save_vehicle
from .vin import normalize_vin, validate_vin

logger = logging.getLogger(__name__)

_TEXT_FIELDS = (
    "legacy_lead_id",
    "first_name",
    "last_name",
    "business_name",
    "company",
    "email",
    "address1",
    "address2",
    "city",
    "state",
    "zip",
    "country",
    "website",
    "source",
    "tags",
    "primary_user_assigned",
    "pnl",
    "notes",
)
_DATE_FIELDS = ("lead_created_at", "date_added", "last_appointment", "last_service")
_IDENTIFYING_FIELDS = ("legacy_client_id", "email", "phone", "first_name", "last_name", "company", "business_name")


def _customer_values(values: Mapping[str, object]) -> dict[str, object]:
    """Canonical customer attributes from a projected row; blanks are dropped."""
    result: dict[str, object] = {}
    for name in _TEXT_FIELDS:
        text = clean_text(values.get(name))
        if text is not None:
            result[name] = text
    for name in _DATE_FIELDS:
        parsed = coerce_datetime(values.get(name))
        if parsed is not None:
            result[name] = parsed
    unsubscribed = coerce_bool(values.get("unsubscribed_email"))
    if unsubscribed is not None:
        result["unsubscribed_email"] = unsubscribed

    raw_phone = values.get("phone")
    if raw_phone is not None and clean_text(raw_phone) and not is_placeholder_phone(raw_phone):
        phone = normalize_phone(raw_phone)
        result["phone_raw"] = phone.raw
        if phone.valid:
            result["phone"] = phone.e164
            result["phone_e164"] = phone.e164
            result["phone_display"] = phone.display
    return result


def _vehicle_fields(values: Mapping[str, object]) -> dict[str, object]:
    return {
        "year": values.get("year"),
        "make": values.get("make"),
        "model": values.get("model"),
        "trim": values.get("trim"),
        "mileage": values.get("mileage"),
        "plate": values.get("plate"),
        "color": values.get("color"),
        "notes": values.get("vehicle_notes"),
    }


class CustomerImporter:
    def __init__(self, session: Session, summary: RunSummary, *, batch_size: int = 500) -> None:
        self.session = session
        self.summary = summary
        self.batch_size = batch_size
        self.index = CustomerIndex.build(session)
        self.resolver = IdentityResolver(self.index)
        self.touched: set[int] = set()

    def import_row(self, row: Mapping[str, object]) -> None:
        summary = self.summary
        values = CUSTOMER_EXPORT_CONTRACT.project(row)
        if not any(clean_text(values.get(name)) for name in _IDENTIFYING_FIELDS):
            summary.incr("rows_skipped")
            return

        client_id = normalize_legacy_id(values.get("legacy_client_id"))
        resolution = self.resolver.resolve(
            IdentityRecord(
                legacy_client_id=client_id,
                email=values.get("email"),
                phone=values.get("phone"),
                first_name=values.get("first_name"),
                last_name=values.get("last_name"),
                vin=values.get("vin"),
                notes=values.get("notes"),
            )
        )
        if resolution.ambiguous:
            summary.incr("ambiguous_rows")

        attributes = _customer_values(values)
        if "phone_raw" in attributes and "phone_e164" not in attributes:
            summary.incr("phones_unparseable")

        if resolution.resolved:
            customer = self.session.get(Customer, resolution.customer_id)
            for name, value in attributes.items():
                setattr(customer, name, value)
            if client_id and customer.legacy_client_id is None and client_id not in self.index.by_client_id:
                customer.legacy_client_id = client_id
            summary.incr("customers_matched")
            summary.incr(f"matched_by_{resolution.matched_by}")
        else:
            claimed = client_id is not None and client_id in self.index.by_client_id
            customer = Customer(legacy_client_id=None if claimed else client_id, **attributes)
            self.session.add(customer)
            self.session.flush()
            summary.incr("customers_created")
        self.index.register(customer)
        self.touched.add(customer.id)

        self._import_vehicle(values, customer.id)

    def _import_vehicle(self, values: Mapping[str, object], customer_id: int) -> None:
        raw_vin = values.get("vin")
        if normalize_vin(raw_vin) is None:
            return
        vin = validate_vin(raw_vin)
        if vin is None:
            self.summary.incr("vehicles_invalid_vin")
            logger.warning(
                "Skipping vehicle with invalid VIN %r",
                raw_vin,
                extra={"reconcile_run_id": self.summary.run_id},
            )
            return
        previous_owner = self.index.vehicle_owners.get(vin)
        saved = save_vehicle(self.session, vin, customer_id, _vehicle_fields(values))
        self.index.register_vehicle(vin, customer_id)
        self.touched.add(customer_id)
        if previous_owner is not None:
            self.touched.add(previous_owner)
        self.summary.incr("vehicles_created" if saved.created else "vehicles_updated")

    def run(self, rows: Iterable[Mapping[str, object]], *, allow_unset: bool = False) -> RunSummary:
        for position, row in enumerate(rows, start=1):
            self.summary.incr("rows_processed")
            self.import_row(row)
            if position % self.batch_size == 0:
                self.session.flush()

        dealers = recompute_dealer_flags(self.session, self.touched, allow_unset=allow_unset)
        self.summary.incr("dealers_flagged", dealers.flagged)
        if dealers.unflagged:
            self.summary.incr("dealers_unflagged", dealers.unflagged)
        self.session.commit()
        return self.summary


def import_customers(
    rows: Iterable[Mapping[str, object]],
    *,
    session: Session | None = None,
    source: str | None = None,
    summary: RunSummary | None = None,
    batch_size: int | None = None,
    allow_unset: bool | None = None,
) -> RunSummary:
    """Import customer export rows inside a tracked run."""
    session = session or db.session
    summary = summary or RunSummary(name="customer import")
    config = current_app.config
    batch_size = batch_size or config.get("RECONCILE_BATCH_SIZE", 500)
    if allow_unset is None:
        allow_unset = bool(config.get("DEALER_FLAG_ALLOW_UNSET", False))

    with tracked_run(session, ReconcileRunKind.CUSTOMER_IMPORT, summary, source=source):
        CustomerImporter(session, summary, batch_size=batch_size).run(rows, allow_unset=allow_unset)
    return summary
