"""
Module: settlement_kernel.selectors.payment_selector
Responsibility: Payment and confirmation-event reads for orchestration,
    reconciliation and reporting.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - "Latest confirmation" is the most recent PAYMENT_CONFIRMED event of a
      payment (created_at descending, first match wins), so a payment with
      several confirmation events is attributed exactly once.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.payments import (
    PaymentEventType,
    PaymentStatus,
    rail_from_event,
)
from settlement_kernel.domain.rails import Rail
from settlement_kernel.models.payment import Payment, PaymentEvent
from settlement_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class PaymentView:
    payment_id: UUID
    organization_id: UUID
    short_code: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    description: str | None
    invoice_reference: str | None
    customer_email: str | None
    created_at: datetime
    paid_at: datetime | None = None


@dataclass(frozen=True)
class ConfirmationView:
    event_id: UUID
    payment_id: UUID
    payment_method: str | None
    external_reference: str | None
    amount_received: Decimal | None
    currency_received: str | None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def rail(self) -> Rail | None:
        return rail_from_event(self.payment_method, self.metadata)


@dataclass(frozen=True)
class SettledPayment:
    payment: PaymentView
    confirmation: ConfirmationView | None

    @property
    def rail(self) -> Rail | None:
        return self.confirmation.rail if self.confirmation else None


def _payment_view(row: Payment) -> PaymentView:
    return PaymentView(
        payment_id=row.id,
        organization_id=row.organization_id,
        short_code=row.short_code,
        amount=row.amount,
        currency=row.currency,
        status=PaymentStatus(row.status),
        description=row.description,
        invoice_reference=row.invoice_reference,
        customer_email=row.customer_email,
        created_at=row.created_at,
        paid_at=row.paid_at,
    )


def _confirmation_view(row: PaymentEvent) -> ConfirmationView:
    return ConfirmationView(
        event_id=row.id,
        payment_id=row.payment_id,
        payment_method=row.payment_method,
        external_reference=row.external_reference,
        amount_received=row.amount_received,
        currency_received=row.currency_received,
        metadata=dict(row.event_metadata or {}),
        created_at=row.created_at,
    )


class PaymentSelector(BaseSelector):
    def get_payment(
        self,
        payment_id: UUID,
        organization_id: UUID | None = None,
    ) -> PaymentView | None:
        stmt = select(Payment).where(Payment.id == payment_id)
        if organization_id is not None:
            stmt = stmt.where(Payment.organization_id == organization_id)
        row = self._session.execute(stmt).scalar_one_or_none()
        return _payment_view(row) if row is not None else None

    def latest_confirmation(self, payment_id: UUID) -> ConfirmationView | None:
        row = self._session.execute(
            select(PaymentEvent)
            .where(
                PaymentEvent.payment_id == payment_id,
                PaymentEvent.event_type == PaymentEventType.PAYMENT_CONFIRMED.value,
            )
            .order_by(PaymentEvent.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return _confirmation_view(row) if row is not None else None

    def latest_confirmations(self, payment_ids: Sequence[UUID]) -> dict[UUID, ConfirmationView]:
        """Most recent PAYMENT_CONFIRMED event per payment, in one query."""
        if not payment_ids:
            return {}
        events = self._session.execute(
            select(PaymentEvent)
            .where(
                PaymentEvent.payment_id.in_(payment_ids),
                PaymentEvent.event_type == PaymentEventType.PAYMENT_CONFIRMED.value,
            )
            .order_by(PaymentEvent.created_at.desc())
        ).scalars()

        latest: dict[UUID, ConfirmationView] = {}
        for event in events:
            latest.setdefault(event.payment_id, _confirmation_view(event))
        return latest

    def list_payments(
        self,
        organization_id: UUID,
        *,
        status: PaymentStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[PaymentView]:
        stmt = select(Payment).where(Payment.organization_id == organization_id)
        if status is not None:
            stmt = stmt.where(Payment.status == status.value)
        if start is not None:
            stmt = stmt.where(Payment.created_at >= start)
        if end is not None:
            stmt = stmt.where(Payment.created_at <= end)
        stmt = stmt.order_by(Payment.created_at.desc())
        return [_payment_view(row) for row in self._session.execute(stmt).scalars()]

    def settled_payments(
        self,
        organization_id: UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[SettledPayment]:
        """PAID payments with their latest confirmation event attached."""
        payments = self.list_payments(
            organization_id, status=PaymentStatus.PAID, start=start, end=end
        )
        latest = self.latest_confirmations([p.payment_id for p in payments])
        return [SettledPayment(p, latest.get(p.payment_id)) for p in payments]
