# parhub/models/event.py

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class CustomerEvent(BaseModel):
    """
    Calendar history imported from legacy exports.

    ``legacy_event_id`` makes re-imports idempotent. Events whose identity
    could not be resolved keep null foreign keys instead of being dropped.
    """

    __tablename__ = "customer_events"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    legacy_event_id: Mapped[str] = mapped_column(db.String(128), nullable=False, unique=True)
    customer_id: Mapped[int | None] = mapped_column(
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    vehicle_vin: Mapped[str | None] = mapped_column(
        ForeignKey("vehicles.vin", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    event_date: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    title: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    source: Mapped[str] = mapped_column(db.String(64), nullable=False, default="calendar_import")
    matched_by: Mapped[str | None] = mapped_column(db.String(32), nullable=True)

    customer = relationship("Customer", back_populates="events")
    vehicle = relationship("Vehicle")

    def __repr__(self):
        return f"<CustomerEvent {self.legacy_event_id}>"
