"""
Canonical customer rows populated by legacy migration and spreadsheet imports.

Customer identity is deduplicated by the identity resolver rather than by a
database constraint, because the matching keys (email, phone, name) are fuzzy.
Only the spreadsheet client id is unique at the database level.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class Customer(BaseModel):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)

    # Identifiers carried over from legacy systems
    legacy_customer_id: Mapped[str | None] = mapped_column(db.String(64), nullable=True, index=True)
    legacy_client_id: Mapped[str | None] = mapped_column(db.String(64), nullable=True, unique=True)
    legacy_lead_id: Mapped[str | None] = mapped_column(db.String(64), nullable=True)

    first_name: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    last_name: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    business_name: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    company: Mapped[str | None] = mapped_column(db.String(255), nullable=True)

    # ``phone`` keeps whatever the source held; the normalized trio is derived.
    phone: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    phone_raw: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    phone_e164: Mapped[str | None] = mapped_column(db.String(20), nullable=True, index=True)
    phone_display: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    email: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)

    address1: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    address2: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    zip: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    country: Mapped[str | None] = mapped_column(db.String(64), nullable=True)

    website: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    source: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    tags: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    unsubscribed_email: Mapped[bool | None] = mapped_column(db.Boolean, nullable=True)
    primary_user_assigned: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    pnl: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    lead_created_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    date_added: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    last_appointment: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    last_service: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)

    is_dealer: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    dealer_level: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    vehicles = relationship("Vehicle", back_populates="customer")
    events = relationship("CustomerEvent", back_populates="customer")

    __table_args__ = (Index("idx_customers_name", "first_name", "last_name"),)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self):
        return f"<Customer {self.id} {self.full_name or self.business_name or ''}>"
