"""
Payment records read by the settlement core.

Payments and their events are written by the collection layer; the core only
reads them (orchestration, reconciliation, reporting).  Event metadata is the
raw producer blob; parse it with ``settlement_kernel.domain.payments``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TrackedBase, UTCDateTime, UUIDString


class Payment(TrackedBase):
    """A payment link as seen by settlement: amount due, currency, status."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("ix_payments_org_status", "organization_id", "status"),
        Index("ix_payments_created_at", "created_at"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    short_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="OPEN")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    invoice_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    events: Mapped[list["PaymentEvent"]] = relationship(
        "PaymentEvent",
        back_populates="payment",
    )

    def __repr__(self) -> str:
        return f"<Payment {self.short_code} {self.amount} {self.currency} {self.status}>"


class PaymentEvent(TrackedBase):
    """Lifecycle event of a payment (created, confirmed, failed, ...)."""

    __tablename__ = "payment_events"

    __table_args__ = (
        Index("ix_payment_events_payment_type", "payment_id", "event_type"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    external_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    amount_received: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency_received: Mapped[str | None] = mapped_column(String(10), nullable=True)
    event_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True,
    )

    payment: Mapped[Payment] = relationship("Payment", back_populates="events")
