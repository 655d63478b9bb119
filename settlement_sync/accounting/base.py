"""
Accounting gateway interface.

Contract:
    Both calls are keyed by the settlement payment id and must be
    idempotent on it: a repeated create_invoice / create_payment for the
    same payment returns the record created the first time.  Failures raise
    AccountingApiError (the remote answered with an error status),
    AccountingTransportError (no answer) or MissingCredentialsError.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID


@dataclass(frozen=True)
class InvoiceRequest:
    payment_id: UUID
    organization_id: UUID
    amount: Decimal
    currency: str
    revenue_account_id: str
    description: str | None = None
    invoice_reference: str | None = None
    customer_email: str | None = None


@dataclass(frozen=True)
class InvoiceResult:
    invoice_id: str
    invoice_number: str | None = None


@dataclass(frozen=True)
class PaymentRequest:
    payment_id: UUID
    organization_id: UUID
    invoice_id: str
    account_id: str
    amount: Decimal
    currency: str
    paid_at: datetime
    reference: str
    narration: str


@dataclass(frozen=True)
class PaymentResult:
    payment_id: str


class AccountingGateway(Protocol):
    def create_invoice(self, request: InvoiceRequest) -> InvoiceResult:
        ...

    def create_payment(self, request: PaymentRequest) -> PaymentResult:
        ...

    def close(self) -> None:
        ...
