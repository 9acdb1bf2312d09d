"""
Dealer (business customer) classification.

A customer is a dealer when a business name is on file or at least
``DEALER_VEHICLE_THRESHOLD`` vehicles are linked to them. Flags are
recomputed by the importers and migrations after they write vehicles; by
default recomputation only ever sets the flag.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from parhub.models import Customer, Vehicle

logger = logging.getLogger(__name__)

DEALER_VEHICLE_THRESHOLD = 10
_ID_CHUNK = 500


def classify_dealer(business_name: object | None, vehicle_count: int) -> bool:
    has_business = business_name is not None and bool(str(business_name).strip())
    return has_business or vehicle_count >= DEALER_VEHICLE_THRESHOLD


@dataclass(frozen=True)
class DealerRecomputeSummary:
    examined: int
    flagged: int
    unflagged: int
    allow_unset: bool


def _chunks(ids: list[int]):
    for start in range(0, len(ids), _ID_CHUNK):
        yield ids[start : start + _ID_CHUNK]


def _dealer_rows(session: Session, customer_ids: list[int] | None):
    vehicle_counts = (
        select(Vehicle.customer_id, func.count(Vehicle.vin).label("vehicle_count"))
        .group_by(Vehicle.customer_id)
        .subquery()
    )
    base = select(
        Customer.id,
        Customer.business_name,
        Customer.is_dealer,
        func.coalesce(vehicle_counts.c.vehicle_count, 0),
    ).outerjoin(vehicle_counts, vehicle_counts.c.customer_id == Customer.id)

    if customer_ids is None:
        yield from session.execute(base).all()
        return
    for chunk in _chunks(customer_ids):
        yield from session.execute(base.where(Customer.id.in_(chunk))).all()


def recompute_dealer_flags(
    session: Session,
    customer_ids: Iterable[int] | None = None,
    *,
    allow_unset: bool = False,
) -> DealerRecomputeSummary:
    """
    Re-derive ``is_dealer`` for ``customer_ids`` (all customers when ``None``).

    A true flag is cleared only when ``allow_unset`` is set; otherwise manual
    dealer designations survive recomputation.
    """
    ids = None if customer_ids is None else sorted({int(value) for value in customer_ids})
    examined = flagged = unflagged = 0
    to_set: list[int] = []
    to_clear: list[int] = []

    for customer_id, business_name, is_dealer, vehicle_count in _dealer_rows(session, ids):
        examined += 1
        desired = classify_dealer(business_name, int(vehicle_count or 0))
        if desired and not is_dealer:
            to_set.append(customer_id)
        elif not desired and is_dealer and allow_unset:
            to_clear.append(customer_id)

    for chunk in _chunks(to_set):
        session.query(Customer).filter(Customer.id.in_(chunk)).update(
            {Customer.is_dealer: True}, synchronize_session="fetch"
        )
        flagged += len(chunk)
    for chunk in _chunks(to_clear):
        session.query(Customer).filter(Customer.id.in_(chunk)).update(
            {Customer.is_dealer: False}, synchronize_session="fetch"
        )
        unflagged += len(chunk)

    if flagged or unflagged:
        logger.info(
            "Dealer flags recomputed",
            extra={"examined": examined, "flagged": flagged, "unflagged": unflagged},
        )
    return DealerRecomputeSummary(examined=examined, flagged=flagged, unflagged=unflagged, allow_unset=allow_unset)
