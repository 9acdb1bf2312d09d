"""
Versioned, additive migrations from the legacy store into the target schema.

Each migration is an ordered list of steps. The orchestrator runs every step
in its own transaction; a step that raises rolls back and fails the whole
migration. Steps never drop legacy data.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from parhub.models import Customer, CustomerEvent, LegacyVehicle, Vehicle, VinDecodeCacheEntry

from .accessor import RowAccessor
from .contracts import (
    CREATED_AT_SYNONYMS,
    LEGACY_CUSTOMER_CONTRACT,
    LEGACY_CUSTOMER_TABLE_HINTS,
    LEGACY_VEHICLE_CONTRACT,
    LEGACY_VEHICLE_OWNER_SYNONYMS,
    LEGACY_VEHICLE_TABLE_HINTS,
)
from .dealer import classify_dealer
from .discovery import SchemaContext, SchemaDiscovery, find_column
from .errors import NotFoundError, VerificationError
from .identity import normalize_legacy_id
from .phone import is_placeholder_phone, normalize_phone
from .schema_ops import ensure_columns, ensure_table, ensure_unique_index
from .summary import RunSummary
from .values import clean_text, coerce_datetime, coerce_int
from .vin import VinTriage, is_valid_vin, normalize_vin, triage_vin

logger = logging.getLogger(__name__)


@dataclass
class MigrationContext:
    """Everything a step needs; ``state`` carries values between steps."""

    session: Session
    legacy: SchemaDiscovery
    schema: SchemaContext
    summary: RunSummary
    batch_size: int = 500
    state: dict = field(default_factory=dict)

    @property
    def connection(self):
        return self.session.connection()

    def has_column(self, table_name: str, column_name: str) -> bool:
        if not self.schema.loaded:
            self.schema.reload(self.connection)
        return self.schema.has_column(table_name, column_name)


@dataclass(frozen=True)
class MigrationStep:
    name: str
    run: Callable[[MigrationContext], None]


@dataclass(frozen=True)
class Migration:
    version: str
    description: str
    steps: tuple[MigrationStep, ...]


def split_name(full_name: object | None) -> tuple[str | None, str | None]:
    """First whitespace token is the first name, the rest the last name."""
    text = clean_text(full_name)
    if not text:
        return None, None
    parts = text.split()
    return parts[0], (" ".join(parts[1:]) or None)


def _count(session: Session, model) -> int:
    return int(session.scalar(select(func.count()).select_from(model)) or 0)


# --- 0001 -------------------------------------------------------------------


def create_core_tables(ctx: MigrationContext) -> None:
    for model in (Customer, Vehicle, LegacyVehicle):
        if ensure_table(ctx.connection, model, ctx.schema):
            ctx.summary.incr("tables_created")


def _build_customer(values: dict, legacy_key: str | None, vehicle_count: int) -> Customer:
    split_first, split_last = split_name(values.get("full_name"))
    business_name = clean_text(values.get("business_name"))
    customer = Customer(
        legacy_customer_id=legacy_key,
        first_name=clean_text(values.get("first_name")) or split_first,
        last_name=clean_text(values.get("last_name")) or split_last,
        business_name=business_name,
        phone=clean_text(values.get("phone")),
        email=clean_text(values.get("email")),
        address1=clean_text(values.get("address1")),
        address2=clean_text(values.get("address2")),
        city=clean_text(values.get("city")),
        state=clean_text(values.get("state")),
        zip=clean_text(values.get("zip")),
        notes=clean_text(values.get("notes")),
        dealer_level=clean_text(values.get("dealer_level")),
        is_dealer=classify_dealer(business_name, vehicle_count),
    )
    created_at = coerce_datetime(values.get("created_at"))
    updated_at = coerce_datetime(values.get("updated_at"))
    if created_at is not None:
        customer.created_at = created_at
    if updated_at is not None:
        customer.updated_at = updated_at
    return customer


def _triage_legacy_vehicle(raw_vin: object | None, customer_id: int | None, seen: set) -> VinTriage:
    """
    VIN format problems outrank a missing owner, and a missing owner is
    decided before the VIN is claimed so it cannot shadow a later owned row.
    """
    if customer_id is not None:
        return triage_vin(raw_vin, seen)
    vin = normalize_vin(raw_vin)
    if vin is None:
        return VinTriage("missing_vin", None)
    if not is_valid_vin(vin):
        return VinTriage("invalid_vin_format", vin)
    return VinTriage("missing_customer", vin)


def _copy_vehicles(ctx: MigrationContext, rows: list[dict], owner_column: str, id_map: dict) -> None:
    session = ctx.session
    summary = ctx.summary
    seen: set[str] = set()

    for position, row in enumerate(rows, start=1):
        values = LEGACY_VEHICLE_CONTRACT.project(row)
        owner_key = normalize_legacy_id(RowAccessor(row).get([owner_column]))
        customer_id = id_map.get(owner_key) if owner_key else None
        triage = _triage_legacy_vehicle(values.get("vin"), customer_id, seen)

        fields = {
            "year": coerce_int(values.get("year")),
            "make": clean_text(values.get("make")),
            "model": clean_text(values.get("model")),
            "trim": clean_text(values.get("trim")),
            "color": clean_text(values.get("color")),
            "plate": clean_text(values.get("plate")),
            "mileage": coerce_int(values.get("mileage")),
            "notes": clean_text(values.get("notes")),
        }
        legacy_vehicle_id = normalize_legacy_id(values.get("legacy_id"))

        if triage.migrated:
            vehicle = Vehicle(vin=triage.vin, customer_id=customer_id, legacy_vehicle_id=legacy_vehicle_id, **fields)
            created_at = coerce_datetime(values.get("created_at"))
            if created_at is not None:
                vehicle.created_at = created_at
            session.add(vehicle)
            summary.incr("vehicles_migrated")
        else:
            raw_vin = clean_text(values.get("vin"))
            session.add(
                LegacyVehicle(
                    source_vehicle_id=legacy_vehicle_id,
                    customer_id=customer_id,
                    legacy_customer_id=owner_key,
                    vin=raw_vin[:64] if raw_vin else None,
                    reason=triage.reason,
                    **fields,
                )
            )
            summary.incr("vehicles_preserved")
            summary.incr(f"preserved_{triage.outcome}")

        if position % ctx.batch_size == 0:
            session.flush()
    session.flush()


def discover_legacy_sources(ctx: MigrationContext) -> None:
    """Locate the legacy customer/vehicle tables and the vehicle owner column."""
    legacy = ctx.legacy
    summary = ctx.summary

    customer_table = vehicle_table = owner_column = None
    vehicle_columns: list[str] = []
    try:
        customer_table = legacy.require_table(LEGACY_CUSTOMER_TABLE_HINTS, "customer table")
    except NotFoundError as exc:
        summary.warn("%s; target schema created without copied data.", exc)
    try:
        vehicle_table = legacy.require_table(LEGACY_VEHICLE_TABLE_HINTS, "vehicle table")
        vehicle_columns = legacy.fetch_columns(vehicle_table)
        owner_column = legacy.require_column(vehicle_table, vehicle_columns, LEGACY_VEHICLE_OWNER_SYNONYMS)
    except NotFoundError as exc:
        summary.warn("%s; vehicle copy skipped.", exc)

    ctx.state.update(
        customer_table=customer_table,
        vehicle_table=vehicle_table if owner_column else None,
        vehicle_columns=vehicle_columns,
        owner_column=owner_column,
    )


def copy_legacy_data(ctx: MigrationContext) -> None:
    """Copy legacy customers and vehicles, but only into an empty target."""
    session = ctx.session
    summary = ctx.summary
    legacy = ctx.legacy
    customer_table = ctx.state.get("customer_table")
    vehicle_table = ctx.state.get("vehicle_table")
    owner_column = ctx.state.get("owner_column")

    if not customer_table:
        return
    existing = _count(session, Customer)
    if existing:
        logger.info("Target already holds %d customers; legacy copy skipped", existing)
        summary.incr("copy_skipped")
        return
    ctx.state["copied"] = True

    vehicle_rows: list[dict] = []
    if vehicle_table:
        vehicle_columns = ctx.state.get("vehicle_columns") or []
        ordering = [
            find_column(vehicle_columns, CREATED_AT_SYNONYMS),
            find_column(vehicle_columns, LEGACY_VEHICLE_CONTRACT.synonyms("legacy_id")),
        ]
        vehicle_rows = legacy.fetch_rows(vehicle_table, order_by=[name for name in ordering if name])

    vehicle_counts: Counter = Counter()
    for row in vehicle_rows:
        owner_key = normalize_legacy_id(RowAccessor(row).get([owner_column]))
        if owner_key:
            vehicle_counts[owner_key] += 1

    id_map: dict[str, int] = {}
    pending: list[tuple[str, Customer]] = []
    for row in legacy.fetch_rows(customer_table):
        values = LEGACY_CUSTOMER_CONTRACT.project(row)
        legacy_key = normalize_legacy_id(values.get("legacy_id"))
        customer = _build_customer(values, legacy_key, vehicle_counts.get(legacy_key, 0) if legacy_key else 0)
        session.add(customer)
        summary.incr("customers_copied")
        if customer.is_dealer:
            summary.incr("dealers_flagged")
        if legacy_key:
            pending.append((legacy_key, customer))
        if len(pending) >= ctx.batch_size:
            session.flush()
            id_map.update((key, item.id) for key, item in pending)
            pending = []
    session.flush()
    id_map.update((key, item.id) for key, item in pending)

    if vehicle_table:
        _copy_vehicles(ctx, vehicle_rows, owner_column, id_map)


def verify_legacy_copy(ctx: MigrationContext) -> None:
    """
    Compare committed target counts against the legacy source. Vehicles are
    accounted for when migrated or preserved in the side table.
    """
    session = ctx.session
    customer_table = ctx.state.get("customer_table")
    vehicle_table = ctx.state.get("vehicle_table")
    if not customer_table:
        return
    if not ctx.state.get("copied"):
        ctx.summary.warn("Legacy copy was skipped; count verification not run for this pass.")
        return

    legacy_customers = ctx.legacy.count_rows(customer_table)
    new_customers = _count(session, Customer)
    ctx.summary.incr("legacy_customers", legacy_customers)
    if legacy_customers != new_customers:
        raise VerificationError("Customer", legacy_customers, new_customers)

    if vehicle_table:
        legacy_vehicles = ctx.legacy.count_rows(vehicle_table)
        accounted = _count(session, Vehicle) + _count(session, LegacyVehicle)
        ctx.summary.incr("legacy_vehicles", legacy_vehicles)
        if legacy_vehicles != accounted:
            raise VerificationError("Vehicle", legacy_vehicles, accounted, detail="migrated + preserved")
    ctx.summary.incr("verified")


# --- 0002 -------------------------------------------------------------------


def create_decode_cache(ctx: MigrationContext) -> None:
    if ensure_table(ctx.connection, VinDecodeCacheEntry, ctx.schema):
        ctx.summary.incr("tables_created")
    added = ensure_columns(
        ctx.connection,
        Vehicle,
        ("legacy_vehicle_id", "decoded_source", "decoded_at", "raw_decode", "manual_overrides"),
        ctx.schema,
    )
    ctx.summary.incr("columns_added", len(added))


# --- 0003 -------------------------------------------------------------------


def add_phone_columns(ctx: MigrationContext) -> None:
    added = ensure_columns(ctx.connection, Customer, ("phone_raw", "phone_e164", "phone_display"), ctx.schema)
    ctx.summary.incr("columns_added", len(added))


def backfill_phone_columns(ctx: MigrationContext) -> None:
    """Derive the normalized phone trio for customers that only have ``phone``."""
    session = ctx.session
    summary = ctx.summary
    if not ctx.has_column(Customer.__tablename__, "phone"):
        summary.warn("Target customers table has no legacy phone column; backfill skipped.")
        return
    customers = session.scalars(
        select(Customer).where(Customer.phone.is_not(None), Customer.phone_raw.is_(None)).order_by(Customer.id)
    ).all()
    for position, customer in enumerate(customers, start=1):
        if is_placeholder_phone(customer.phone):
            customer.phone = None
            summary.incr("phones_cleared")
            continue
        result = normalize_phone(customer.phone)
        customer.phone_raw = result.raw or None
        customer.phone_e164 = result.e164
        customer.phone_display = result.display
        summary.incr("phones_normalized" if result.valid else "phones_unparseable")
        if position % ctx.batch_size == 0:
            session.flush()


# --- 0004 -------------------------------------------------------------------

_IMPORT_CUSTOMER_COLUMNS = (
    "legacy_client_id",
    "legacy_lead_id",
    "company",
    "country",
    "website",
    "source",
    "tags",
    "unsubscribed_email",
    "primary_user_assigned",
    "pnl",
    "lead_created_at",
    "date_added",
    "last_appointment",
    "last_service",
)


def add_import_columns(ctx: MigrationContext) -> None:
    added = ensure_columns(ctx.connection, Customer, _IMPORT_CUSTOMER_COLUMNS, ctx.schema)
    ensure_unique_index(ctx.connection, Customer, "legacy_client_id", "uq_customers_legacy_client_id")
    ctx.summary.incr("columns_added", len(added))


def create_event_table(ctx: MigrationContext) -> None:
    if ensure_table(ctx.connection, CustomerEvent, ctx.schema):
        ctx.summary.incr("tables_created")


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        "0001_customers_and_vehicles",
        "Create customer/vehicle tables and copy legacy data",
        (
            MigrationStep("create_core_tables", create_core_tables),
            MigrationStep("discover_legacy_sources", discover_legacy_sources),
            MigrationStep("copy_legacy_data", copy_legacy_data),
            MigrationStep("verify_legacy_copy", verify_legacy_copy),
        ),
    ),
    Migration(
        "0002_vin_decode_cache",
        "VIN decode cache and vehicle decode metadata",
        (MigrationStep("create_decode_cache", create_decode_cache),),
    ),
    Migration(
        "0003_customer_phone_columns",
        "Normalized customer phone columns",
        (
            MigrationStep("add_phone_columns", add_phone_columns),
            MigrationStep("backfill_phone_columns", backfill_phone_columns),
        ),
    ),
    Migration(
        "0004_import_schema",
        "Spreadsheet import columns and customer events",
        (
            MigrationStep("add_import_columns", add_import_columns),
            MigrationStep("create_event_table", create_event_table),
        ),
    ),
)

MIGRATIONS_BY_VERSION = {migration.version: migration for migration in MIGRATIONS}
