"""Accounting system gateways."""

from settlement_sync.accounting.base import (
    AccountingGateway,
    InvoiceRequest,
    InvoiceResult,
    PaymentRequest,
    PaymentResult,
)
from settlement_sync.accounting.http import HttpAccountingGateway
from settlement_sync.accounting.memory import InMemoryAccountingGateway

__all__ = [
    "AccountingGateway",
    "HttpAccountingGateway",
    "InMemoryAccountingGateway",
    "InvoiceRequest",
    "InvoiceResult",
    "PaymentRequest",
    "PaymentResult",
]
