"""
Vehicle tables keyed by VIN, the decode cache, and the side table that keeps
legacy vehicles which could not be migrated.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db, utcnow


class Vehicle(BaseModel):
    """A physical vehicle. The VIN is the primary key; it is validated before any write."""

    __tablename__ = "vehicles"

    vin: Mapped[str] = mapped_column(db.String(17), primary_key=True)
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    legacy_vehicle_id: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    year: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    make: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    model: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    trim: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    color: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    plate: Mapped[str | None] = mapped_column(db.String(32), nullable=True)
    mileage: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    decoded_source: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    decoded_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    raw_decode: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    manual_overrides: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    customer = relationship("Customer", back_populates="vehicles")

    def __repr__(self):
        return f"<Vehicle {self.vin} customer={self.customer_id}>"


class TriageReason(str, enum.Enum):
    """Why a legacy vehicle row was preserved instead of migrated."""

    MISSING_VIN = "missing_vin"
    INVALID_VIN_FORMAT = "invalid_vin_format"
    DUPLICATE_VIN = "duplicate_vin"
    MISSING_CUSTOMER = "missing_customer"


class LegacyVehicle(BaseModel):
    """Legacy vehicle rows the VIN-keyed table could not accept."""

    __tablename__ = "vehicles_legacy_no_vin"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    source_vehicle_id: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    customer_id: Mapped[int | None] = mapped_column(
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    legacy_customer_id: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    year: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    make: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    model: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    trim: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    color: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    plate: Mapped[str | None] = mapped_column(db.String(32), nullable=True)
    vin: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    mileage: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    reason: Mapped[TriageReason] = mapped_column(
        Enum(TriageReason, name="vehicle_triage_reason_enum", native_enum=False),
        nullable=False,
        index=True,
    )

    __table_args__ = (UniqueConstraint("source_vehicle_id", "vin", name="uq_legacy_vehicle_source_vin"),)

    def __repr__(self):
        return f"<LegacyVehicle {self.source_vehicle_id} reason={self.reason}>"


class VinDecodeCacheEntry(db.Model):
    """
    One row per VIN holding the provider's raw payload.

    The year/make/model/trim projection is parsed from ``result_json`` on every
    read and is never stored separately.
    """

    __tablename__ = "vin_decode_cache"

    vin: Mapped[str] = mapped_column(db.String(17), primary_key=True)
    decoded_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    decoded_source: Mapped[str] = mapped_column(db.String(64), nullable=False, default="nhtsa_vpic")
    result_json: Mapped[dict] = mapped_column(db.JSON, nullable=False)

    def __repr__(self):
        return f"<VinDecodeCacheEntry {self.vin} {self.decoded_at}>"
