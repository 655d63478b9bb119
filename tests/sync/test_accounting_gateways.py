"""
Accounting gateways: the HTTP client against a mocked API and the
in-memory double used by tests and ledger-only runs.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest

from settlement_kernel.exceptions import (
    AccountingApiError,
    AccountingTransportError,
    MissingCredentialsError,
)
from settlement_sync.accounting.base import InvoiceRequest, PaymentRequest
from settlement_sync.accounting.http import HttpAccountingGateway
from settlement_sync.accounting.memory import InMemoryAccountingGateway
from settlement_sync.domain.classification import classify_exception
from settlement_sync.domain.types import ErrorCategory

ORG_ID = uuid4()
PAYMENT_ID = uuid4()


def _invoice_request(**overrides):
    values = dict(
        payment_id=PAYMENT_ID,
        organization_id=ORG_ID,
        amount=Decimal("100.000000000"),
        currency="USD",
        revenue_account_id="acct-revenue",
        description="Consulting services",
        invoice_reference="PAY00001",
        customer_email="customer@example.com",
    )
    values.update(overrides)
    return InvoiceRequest(**values)


def _payment_request(**overrides):
    values = dict(
        payment_id=PAYMENT_ID,
        organization_id=ORG_ID,
        invoice_id="inv-1",
        account_id="acct-stripe-clearing",
        amount=Decimal("100.00"),
        currency="USD",
        paid_at=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
        reference="STRIPE: pi_3MtwBwLkdIwHu7ix28",
        narration="Payment via STRIPE",
    )
    values.update(overrides)
    return PaymentRequest(**values)


def _gateway(handler, token="secret-token"):
    return HttpAccountingGateway(
        "https://accounting.example.com/api/",
        credentials=lambda org_id: token,
        transport=httpx.MockTransport(handler),
    )


class TestHttpAccountingGateway:
    def test_create_invoice(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"id": "inv-1", "number": "INV-0001"})

        result = _gateway(handler).create_invoice(_invoice_request())

        assert result.invoice_id == "inv-1"
        assert result.invoice_number == "INV-0001"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/invoices"
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.headers["Idempotency-Key"] == f"invoice:{PAYMENT_ID}"
        body = json.loads(request.content)
        assert body["reference"] == "PAY00001"
        assert body["line_items"][0] == {
            "description": "Consulting services",
            "amount": "100.000000000",
            "account_id": "acct-revenue",
        }

    def test_invoice_number_is_optional(self):
        gateway = _gateway(lambda request: httpx.Response(200, json={"id": 42}))
        result = gateway.create_invoice(_invoice_request())
        assert result.invoice_id == "42"
        assert result.invoice_number is None

    def test_create_payment(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"id": "pay-1"})

        result = _gateway(handler).create_payment(_payment_request())

        assert result.payment_id == "pay-1"
        assert seen[0].url.path == "/api/payments"
        assert seen[0].headers["Idempotency-Key"] == f"payment:{PAYMENT_ID}"
        body = json.loads(seen[0].content)
        assert body["date"] == "2026-01-01"
        assert body["account_id"] == "acct-stripe-clearing"
        assert body["narration"] == "Payment via STRIPE"

    def test_error_detail_is_surfaced(self):
        gateway = _gateway(lambda request: httpx.Response(422, json={"detail": "Account code is invalid"}))

        with pytest.raises(AccountingApiError) as exc_info:
            gateway.create_invoice(_invoice_request())

        assert exc_info.value.status_code == 422
        assert str(exc_info.value) == "[422] Account code is invalid"

    def test_non_json_error_body(self):
        gateway = _gateway(lambda request: httpx.Response(502, text="upstream unavailable"))

        with pytest.raises(AccountingApiError) as exc_info:
            gateway.create_payment(_payment_request())

        assert exc_info.value.status_code == 502
        assert "upstream unavailable" in str(exc_info.value)

    @pytest.mark.parametrize("body", [["Account code is invalid"], "Account code is invalid", 42])
    def test_non_object_json_error_body(self, body):
        gateway = _gateway(lambda request: httpx.Response(400, json=body))

        with pytest.raises(AccountingApiError) as exc_info:
            gateway.create_invoice(_invoice_request())

        assert exc_info.value.status_code == 400
        assert classify_exception(exc_info.value).category is ErrorCategory.PERMANENT

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(AccountingTransportError) as exc_info:
            _gateway(handler).create_invoice(_invoice_request())

        assert "timed out" in str(exc_info.value)

    def test_missing_credentials(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"id": "x"})

        with pytest.raises(MissingCredentialsError):
            _gateway(handler, token=None).create_invoice(_invoice_request())
        assert calls == []

    def test_close_resets_client(self):
        gateway = _gateway(lambda request: httpx.Response(200, json={"id": "x"}))
        first = gateway.client
        gateway.close()
        assert gateway.client is not first


class TestInMemoryAccountingGateway:
    def test_idempotent_per_payment(self):
        gateway = InMemoryAccountingGateway()
        first = gateway.create_invoice(_invoice_request())
        second = gateway.create_invoice(_invoice_request(amount=Decimal("5")))

        assert first == second
        assert len(gateway.invoices) == 1
        assert gateway.calls == [("create_invoice", PAYMENT_ID), ("create_invoice", PAYMENT_ID)]

    def test_sequential_ids(self):
        gateway = InMemoryAccountingGateway()
        gateway.create_invoice(_invoice_request())
        other = gateway.create_invoice(_invoice_request(payment_id=uuid4()))
        assert other.invoice_id == "inv-00002"
        assert gateway.create_payment(_payment_request()).payment_id == "pay-00001"

    def test_failure_hook(self):
        gateway = InMemoryAccountingGateway()

        def hook(operation, payment_id):
            raise AccountingApiError(503, "Service Unavailable")

        gateway.fail_with = hook
        with pytest.raises(AccountingApiError):
            gateway.create_payment(_payment_request())
        assert gateway.payments == {}
