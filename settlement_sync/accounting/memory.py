"""In-memory accounting gateway for tests and ledger-only local runs."""

from __future__ import annotations

import threading
from collections.abc import Callable
from uuid import UUID

from settlement_sync.accounting.base import (
    InvoiceRequest,
    InvoiceResult,
    PaymentRequest,
    PaymentResult,
)


class InMemoryAccountingGateway:
    """
    Records invoices and payments keyed by settlement payment id.

    ``fail_with`` installs a hook raising an exception before either call,
    letting tests simulate remote failures.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.invoices: dict[UUID, tuple[InvoiceRequest, InvoiceResult]] = {}
        self.payments: dict[UUID, tuple[PaymentRequest, PaymentResult]] = {}
        self.calls: list[tuple[str, UUID]] = []
        self.fail_with: Callable[[str, UUID], None] | None = None
        self.closed = False

    def create_invoice(self, request: InvoiceRequest) -> InvoiceResult:
        with self._lock:
            self.calls.append(("create_invoice", request.payment_id))
            if self.fail_with is not None:
                self.fail_with("create_invoice", request.payment_id)
            existing = self.invoices.get(request.payment_id)
            if existing is not None:
                return existing[1]
            number = len(self.invoices) + 1
            result = InvoiceResult(invoice_id=f"inv-{number:05d}", invoice_number=f"INV-{number:05d}")
            self.invoices[request.payment_id] = (request, result)
            return result

    def create_payment(self, request: PaymentRequest) -> PaymentResult:
        with self._lock:
            self.calls.append(("create_payment", request.payment_id))
            if self.fail_with is not None:
                self.fail_with("create_payment", request.payment_id)
            existing = self.payments.get(request.payment_id)
            if existing is not None:
                return existing[1]
            result = PaymentResult(payment_id=f"pay-{len(self.payments) + 1:05d}")
            self.payments[request.payment_id] = (request, result)
            return result

    def close(self) -> None:
        self.closed = True
