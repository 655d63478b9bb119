"""HTTP accounting gateway over a JSON REST API."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import Any
from uuid import UUID

import httpx

from settlement_kernel.exceptions import (
    AccountingApiError,
    AccountingTransportError,
    MissingCredentialsError,
)
from settlement_kernel.logging_config import get_logger

from settlement_sync.accounting.base import (
    InvoiceRequest,
    InvoiceResult,
    PaymentRequest,
    PaymentResult,
)

logger = get_logger("sync.accounting.http")

CredentialsLookup = Callable[[UUID], str | None]


def _money(value: Decimal) -> str:
    return format(value, "f")


class HttpAccountingGateway:
    """
    Posts invoices and payments to the merchant's accounting system.

    Credentials are resolved per organization on every call, so a token
    refreshed elsewhere is picked up without rebuilding the gateway.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialsLookup,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._credentials = credentials
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _headers(self, organization_id: UUID, idempotency_key: str) -> dict[str, str]:
        token = self._credentials(organization_id)
        if not token:
            raise MissingCredentialsError(str(organization_id))
        return {
            "Authorization": f"Bearer {token}",
            "Idempotency-Key": idempotency_key,
        }

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        if response.status_code >= 400:
            try:
                error_data = response.json()
            except ValueError:
                error_data = None
            if isinstance(error_data, dict):
                message = error_data.get("detail", error_data.get("message", "Unknown error"))
            else:
                message = response.text or "Unknown error"
            raise AccountingApiError(response.status_code, str(message))
        return response.json()

    def _post(
        self,
        path: str,
        body: dict[str, Any],
        organization_id: UUID,
        idempotency_key: str,
    ) -> dict[str, Any]:
        headers = self._headers(organization_id, idempotency_key)
        try:
            response = self.client.post(path, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise AccountingTransportError(str(exc) or type(exc).__name__) from exc
        return self._handle_response(response)

    def create_invoice(self, request: InvoiceRequest) -> InvoiceResult:
        body = {
            "reference": request.invoice_reference or str(request.payment_id),
            "description": request.description,
            "customer_email": request.customer_email,
            "currency": request.currency,
            "line_items": [
                {
                    "description": request.description or "Payment",
                    "amount": _money(request.amount),
                    "account_id": request.revenue_account_id,
                }
            ],
        }
        data = self._post(
            "/invoices", body, request.organization_id, f"invoice:{request.payment_id}"
        )
        logger.info(
            "accounting_invoice_created",
            extra={"payment_id": str(request.payment_id), "invoice_id": data.get("id")},
        )
        return InvoiceResult(invoice_id=str(data["id"]), invoice_number=data.get("number"))

    def create_payment(self, request: PaymentRequest) -> PaymentResult:
        body = {
            "invoice_id": request.invoice_id,
            "account_id": request.account_id,
            "amount": _money(request.amount),
            "currency": request.currency,
            "date": request.paid_at.date().isoformat(),
            "reference": request.reference,
            "narration": request.narration,
        }
        data = self._post(
            "/payments", body, request.organization_id, f"payment:{request.payment_id}"
        )
        logger.info(
            "accounting_payment_created",
            extra={"payment_id": str(request.payment_id), "remote_payment_id": data.get("id")},
        )
        return PaymentResult(payment_id=str(data["id"]))

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
