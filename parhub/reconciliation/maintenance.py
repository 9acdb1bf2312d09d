"""
Operator maintenance jobs: customer phone repair and count verification.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from parhub.models import Customer, LegacyVehicle, ReconcileRunKind, Vehicle, db

from .contracts import LEGACY_CUSTOMER_TABLE_HINTS, LEGACY_VEHICLE_TABLE_HINTS
from .discovery import SchemaDiscovery
from .phone import PhoneResult, is_placeholder_phone, normalize_phone
from .runtime import get_legacy_discovery
from .summary import RunSummary, tracked_run

logger = logging.getLogger(__name__)

_ZEROISH_RE = re.compile(r"^\d{3}0{7}$|0{6,}")


def _is_zeroish(result: PhoneResult | None) -> bool:
    if result is None or not result.e164:
        return False
    return bool(_ZEROISH_RE.search(result.e164[2:]))


def _parse(value: object | None) -> PhoneResult | None:
    if value is None or is_placeholder_phone(value) or not str(value).strip():
        return None
    return normalize_phone(value)


def repair_customer_phone(customer: Customer) -> str:
    """
    Re-derive one customer's phone columns. Returns the outcome tallied by
    ``repair_customer_phones``.

    A parseable legacy ``phone`` wins over ``phone_raw`` unless it is a
    zero-filled placeholder number and ``phone_raw`` parses.
    """
    outcome = "unchanged"
    for name in ("phone", "phone_raw"):
        if is_placeholder_phone(getattr(customer, name)):
            setattr(customer, name, None)
            outcome = "cleared"

    legacy = _parse(customer.phone)
    raw = _parse(customer.phone_raw)
    source = None
    if legacy is not None and legacy.valid:
        source = legacy
    if raw is not None and raw.valid and (source is None or _is_zeroish(source)):
        source = raw
    if source is None:
        return "unparseable" if legacy is not None or raw is not None else outcome

    repaired = {
        "phone_raw": raw.raw if raw is not None else (legacy.raw if legacy is not None else None),
        "phone_e164": source.e164,
        "phone_display": source.display,
        "phone": source.e164,
    }
    for name, value in repaired.items():
        if getattr(customer, name) != value:
            setattr(customer, name, value)
            outcome = "repaired"
    return outcome


def repair_customer_phones(
    *,
    session: Session | None = None,
    summary: RunSummary | None = None,
    dry_run: bool = False,
    batch_size: int = 500,
) -> RunSummary:
    """Scan every customer with a phone value and repair its phone columns."""
    session = session or db.session
    summary = summary or RunSummary(name="phone repair")

    with tracked_run(session, ReconcileRunKind.PHONE_REPAIR, summary, source="dry-run" if dry_run else None):
        customers = session.scalars(
            select(Customer)
            .where(or_(Customer.phone.is_not(None), Customer.phone_raw.is_not(None)))
            .order_by(Customer.id)
        ).all()
        for position, customer in enumerate(customers, start=1):
            summary.incr("customers_scanned")
            summary.incr(f"phones_{repair_customer_phone(customer)}")
            if position % batch_size == 0 and not dry_run:
                session.flush()
        if dry_run:
            session.rollback()
        else:
            session.commit()
        if summary.counts["phones_unparseable"]:
            logger.warning(
                "%d customer phones could not be parsed",
                summary.counts["phones_unparseable"],
                extra={"reconcile_run_id": summary.run_id},
            )
    return summary


@dataclass(frozen=True)
class CountReport:
    legacy_customers: int | None
    legacy_vehicles: int | None
    new_customers: int
    new_vehicles: int
    preserved_vehicles: int

    @property
    def customers_match(self) -> bool:
        return self.legacy_customers is None or self.legacy_customers == self.new_customers

    @property
    def vehicles_match(self) -> bool:
        if self.legacy_vehicles is None:
            return True
        return self.legacy_vehicles == self.new_vehicles + self.preserved_vehicles

    @property
    def ok(self) -> bool:
        return self.customers_match and self.vehicles_match

    def to_dict(self) -> dict[str, object]:
        return {
            "legacy_customers": self.legacy_customers,
            "legacy_vehicles": self.legacy_vehicles,
            "new_customers": self.new_customers,
            "new_vehicles": self.new_vehicles,
            "preserved_vehicles": self.preserved_vehicles,
            "customers_match": self.customers_match,
            "vehicles_match": self.vehicles_match,
            "ok": self.ok,
        }


def verify_counts(*, session: Session | None = None, legacy: SchemaDiscovery | None = None) -> CountReport:
    """Legacy-vs-target row counts; a missing legacy table reports ``None``."""
    session = session or db.session
    legacy = legacy or get_legacy_discovery()

    def count(model) -> int:
        return int(session.scalar(select(func.count()).select_from(model)) or 0)

    customer_table = legacy.find_table_by_hint(LEGACY_CUSTOMER_TABLE_HINTS)
    vehicle_table = legacy.find_table_by_hint(LEGACY_VEHICLE_TABLE_HINTS)
    report = CountReport(
        legacy_customers=legacy.count_rows(customer_table) if customer_table else None,
        legacy_vehicles=legacy.count_rows(vehicle_table) if vehicle_table else None,
        new_customers=count(Customer),
        new_vehicles=count(Vehicle),
        preserved_vehicles=count(LegacyVehicle),
    )
    if not report.ok:
        logger.warning("Record counts do not match the legacy source", extra=report.to_dict())
    return report
