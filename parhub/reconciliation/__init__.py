"""
Legacy data reconciliation and identity resolution.

``init_reconciliation(app)`` records per-app state in
``app.extensions['parhub']`` and mounts the ``flask reconcile`` CLI group.
"""

from __future__ import annotations

from flask import Flask

from .customer_import import import_customers
from .dealer import DEALER_VEHICLE_THRESHOLD, classify_dealer, recompute_dealer_flags
from .discovery import SchemaContext, SchemaDiscovery, find_column
from .errors import (
    MigrationNotFound,
    NotFoundError,
    ReconciliationError,
    UpstreamDecodeError,
    ValidationError,
    VerificationError,
)
from .event_import import import_events
from .identity import AMBIGUOUS, CustomerIndex, IdentityRecord, IdentityResolver, Resolution, resolve_customer
from .maintenance import repair_customer_phones, verify_counts
from .orchestrator import MigrationOrchestrator, build_orchestrator
from .phone import PhoneResult, normalize_phone
from .runtime import _ensure_extension_state, get_legacy_discovery, get_legacy_engine, get_schema_context
from .tabular import read_tabular_rows
from .vehicles import merge_vehicle_fields, save_vehicle
from .vin import extract_vin, triage_vin, validate_vin
from .vin_decode import DecodeResult, NhtsaVinClient, VinDecodeService, build_decode_service, decode_vin

__all__ = [
    "AMBIGUOUS",
    "DEALER_VEHICLE_THRESHOLD",
    "CustomerIndex",
    "DecodeResult",
    "IdentityRecord",
    "IdentityResolver",
    "MigrationNotFound",
    "MigrationOrchestrator",
    "NhtsaVinClient",
    "NotFoundError",
    "PhoneResult",
    "ReconciliationError",
    "Resolution",
    "SchemaContext",
    "SchemaDiscovery",
    "UpstreamDecodeError",
    "ValidationError",
    "VerificationError",
    "VinDecodeService",
    "build_decode_service",
    "build_orchestrator",
    "classify_dealer",
    "decode_vin",
    "extract_vin",
    "find_column",
    "get_legacy_discovery",
    "get_legacy_engine",
    "get_schema_context",
    "import_customers",
    "import_events",
    "init_reconciliation",
    "merge_vehicle_fields",
    "normalize_phone",
    "read_tabular_rows",
    "recompute_dealer_flags",
    "repair_customer_phones",
    "resolve_customer",
    "run_migration",
    "save_vehicle",
    "triage_vin",
    "validate_vin",
    "verify_counts",
]


def run_migration(version: str):
    """Apply one migration against the current app; raises on verification failure."""
    return build_orchestrator().run_migration(version)


def _set_cli(app: Flask) -> None:
    from .cli import reconcile_cli

    # Avoid duplicate registrations when running tests
    if reconcile_cli.name in app.cli.commands:
        app.cli.commands.pop(reconcile_cli.name)
    app.cli.add_command(reconcile_cli)


def init_reconciliation(app: Flask) -> None:
    """Reset cached engines/clients (rebuilt lazily in an app context) and mount the CLI."""
    state = _ensure_extension_state(app)
    for key in ("schema_context", "vin_client", "legacy_engine", "legacy_engine_url"):
        state.pop(key, None)
    _set_cli(app)
