# parhub/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .customer import Customer
from .event import CustomerEvent
from .reconcile import ReconcileRun, ReconcileRunKind, ReconcileRunStatus, SchemaMigration
from .vehicle import LegacyVehicle, TriageReason, Vehicle, VinDecodeCacheEntry

__all__ = [
    "db",
    "BaseModel",
    "Customer",
    "Vehicle",
    "LegacyVehicle",
    "TriageReason",
    "VinDecodeCacheEntry",
    "CustomerEvent",
    # Bookkeeping
    "ReconcileRun",
    "ReconcileRunKind",
    "ReconcileRunStatus",
    "SchemaMigration",
]
