"""
Customer identity resolution for imported records.

Records carry no shared foreign key, so they are matched against existing
customers through a fixed priority chain:

1. legacy client/customer id
2. a VIN found in the record's fields or free text, via the vehicle's owner
3. normalized email
4. E.164 phone
5. case-insensitive full name

Lookup maps are built once per run. A key value claimed by two distinct
customers maps to ``AMBIGUOUS`` and never resolves; the chain moves on to the
next key instead of guessing between two people's history.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Literal, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from parhub.models import Customer, Vehicle

from .phone import phone_key
from .vin import extract_vin, normalize_vin

logger = logging.getLogger(__name__)

MatchedBy = Literal["legacy_client_id", "legacy_customer_id", "vin", "email", "phone", "name"]

_WHITESPACE_RE = re.compile(r"\s+")


class _Ambiguous:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "AMBIGUOUS"

    def __bool__(self):
        return False


AMBIGUOUS = _Ambiguous()


def normalize_email(value: object | None) -> str | None:
    """Trim and lower-case; plus-addresses stay distinct keys."""
    if value is None:
        return None
    token = str(value).strip().lower()
    return token or None


def normalize_name(*parts: object | None) -> str | None:
    joined = " ".join(str(part).strip() for part in parts if part is not None and str(part).strip())
    joined = _WHITESPACE_RE.sub(" ", joined).strip().lower()
    return joined or None


def normalize_legacy_id(value: object | None) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class IdentityRecord:
    """The identifying parts of one incoming record."""

    legacy_client_id: object | None = None
    legacy_customer_id: object | None = None
    email: object | None = None
    phone: object | None = None
    first_name: object | None = None
    last_name: object | None = None
    full_name: object | None = None
    vin: object | None = None
    title: object | None = None
    notes: object | None = None
    services: object | None = None
    free_text: tuple = ()

    @classmethod
    def from_mapping(cls, values: Mapping[str, object]) -> "IdentityRecord":
        known = {name: values.get(name) for name in cls.__dataclass_fields__ if name != "free_text"}
        free_text = values.get("free_text") or ()
        if isinstance(free_text, str):
            free_text = (free_text,)
        return cls(**known, free_text=tuple(free_text))

    @property
    def name_key(self) -> str | None:
        if self.first_name or self.last_name:
            return normalize_name(self.first_name, self.last_name)
        return normalize_name(self.full_name)

    def vin_sources(self) -> tuple:
        """Fields swept for a VIN, in priority order."""
        return (self.vin, self.title, self.notes, self.services, *self.free_text)


@dataclass(frozen=True)
class Resolution:
    customer_id: int | None
    vehicle_vin: str | None = None
    matched_by: MatchedBy | None = None
    extracted_vin: str | None = None
    ambiguous: tuple[str, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.customer_id is not None

    def to_dict(self) -> dict[str, object]:
        return {
            "customer_id": self.customer_id,
            "vehicle_vin": self.vehicle_vin,
            "matched_by": self.matched_by,
            "extracted_vin": self.extracted_vin,
            "ambiguous": list(self.ambiguous),
        }


def _claim(mapping: dict, key: str | None, customer_id: int) -> None:
    if key is None:
        return
    current = mapping.get(key)
    if current is None:
        mapping[key] = customer_id
    elif current is not AMBIGUOUS and current != customer_id:
        mapping[key] = AMBIGUOUS


@dataclass
class CustomerIndex:
    """In-memory lookup maps over existing customers and vehicles."""

    by_client_id: dict = field(default_factory=dict)
    by_customer_id: dict = field(default_factory=dict)
    by_email: dict = field(default_factory=dict)
    by_phone: dict = field(default_factory=dict)
    by_name: dict = field(default_factory=dict)
    vehicle_owners: dict = field(default_factory=dict)

    @classmethod
    def build(cls, session: Session) -> "CustomerIndex":
        index = cls()
        rows = session.execute(
            select(
                Customer.id,
                Customer.legacy_client_id,
                Customer.legacy_customer_id,
                Customer.email,
                Customer.phone,
                Customer.phone_raw,
                Customer.phone_e164,
                Customer.first_name,
                Customer.last_name,
            )
        ).all()
        for row in rows:
            index.add(
                row.id,
                legacy_client_id=row.legacy_client_id,
                legacy_customer_id=row.legacy_customer_id,
                email=row.email,
                phones=(row.phone_e164, row.phone, row.phone_raw),
                first_name=row.first_name,
                last_name=row.last_name,
            )
        for vin, customer_id in session.execute(select(Vehicle.vin, Vehicle.customer_id)).all():
            index.register_vehicle(vin, customer_id)
        logger.debug(
            "Customer index built",
            extra={"customers": len(rows), "vehicles": len(index.vehicle_owners)},
        )
        return index

    def add(
        self,
        customer_id: int,
        *,
        legacy_client_id: object | None = None,
        legacy_customer_id: object | None = None,
        email: object | None = None,
        phones: Iterable[object | None] = (),
        first_name: object | None = None,
        last_name: object | None = None,
    ) -> None:
        _claim(self.by_client_id, normalize_legacy_id(legacy_client_id), customer_id)
        _claim(self.by_customer_id, normalize_legacy_id(legacy_customer_id), customer_id)
        _claim(self.by_email, normalize_email(email), customer_id)
        for phone in {phone_key(value) for value in phones if value is not None}:
            _claim(self.by_phone, phone, customer_id)
        _claim(self.by_name, normalize_name(first_name, last_name), customer_id)

    def register(self, customer: Customer) -> None:
        """Make a customer created during this pass resolvable by later rows."""
        if customer.id is None:
            raise ValueError("Customer must be flushed before it can be indexed")
        self.add(
            customer.id,
            legacy_client_id=customer.legacy_client_id,
            legacy_customer_id=customer.legacy_customer_id,
            email=customer.email,
            phones=(customer.phone_e164, customer.phone, customer.phone_raw),
            first_name=customer.first_name,
            last_name=customer.last_name,
        )

    def register_vehicle(self, vin: object, customer_id: int | None) -> None:
        canonical = normalize_vin(vin)
        if canonical and customer_id is not None:
            self.vehicle_owners[canonical] = customer_id


class IdentityResolver:
    def __init__(self, index: CustomerIndex) -> None:
        self.index = index

    def resolve(self, record: IdentityRecord | Mapping[str, object]) -> Resolution:
        if not isinstance(record, IdentityRecord):
            record = IdentityRecord.from_mapping(record)

        index = self.index
        ambiguous: list[str] = []
        extracted_vin = extract_vin(*record.vin_sources())

        def hit(matched_by: MatchedBy, mapping: dict, key: str | None) -> Resolution | None:
            if key is None:
                return None
            customer_id = mapping.get(key)
            if customer_id is AMBIGUOUS:
                ambiguous.append(matched_by)
                return None
            if customer_id is None:
                return None
            owner = index.vehicle_owners.get(extracted_vin) if extracted_vin else None
            return Resolution(
                customer_id=customer_id,
                vehicle_vin=extracted_vin if owner == customer_id else None,
                matched_by=matched_by,
                extracted_vin=extracted_vin,
                ambiguous=tuple(ambiguous),
            )

        resolution = hit("legacy_client_id", index.by_client_id, normalize_legacy_id(record.legacy_client_id))
        if resolution is None:
            resolution = hit(
                "legacy_customer_id", index.by_customer_id, normalize_legacy_id(record.legacy_customer_id)
            )
        if resolution is not None:
            return resolution

        if extracted_vin and extracted_vin in index.vehicle_owners:
            return Resolution(
                customer_id=index.vehicle_owners[extracted_vin],
                vehicle_vin=extracted_vin,
                matched_by="vin",
                extracted_vin=extracted_vin,
                ambiguous=tuple(ambiguous),
            )

        for matched_by, mapping, key in (
            ("email", index.by_email, normalize_email(record.email)),
            ("phone", index.by_phone, phone_key(record.phone)),
            ("name", index.by_name, record.name_key),
        ):
            resolution = hit(matched_by, mapping, key)
            if resolution is not None:
                return resolution

        if ambiguous:
            logger.info("Identity left unresolved by ambiguous keys", extra={"ambiguous_keys": ambiguous})
        return Resolution(customer_id=None, extracted_vin=extracted_vin, ambiguous=tuple(ambiguous))


def resolve_customer(session: Session, record: IdentityRecord | Mapping[str, object]) -> Resolution:
    """One-off resolution against a freshly built index."""
    return IdentityResolver(CustomerIndex.build(session)).resolve(record)
