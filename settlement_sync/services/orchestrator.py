"""
SyncOrchestrator -- turns one confirmed payment into accounting records.

Flow:
    payment (PAID) -> latest PAYMENT_CONFIRMED event -> typed confirmation
    -> rail -> account mappings -> settlement FX snapshot -> narration
    -> remote invoice -> remote payment -> ledger posting -> SyncResult

Every remote call and the ledger posting are keyed by the payment id, so
replaying the whole flow after a partial failure creates nothing twice.
The orchestrator does not touch the SyncJob row and does not commit.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.payments import (
    CryptoConfirmation,
    PaymentStatus,
    parse_confirmation,
)
from settlement_kernel.exceptions import (
    ClearingAccountNotMappedError,
    ConfirmationEventNotFoundError,
    PaymentNotFoundError,
    PaymentNotSettledError,
    RevenueAccountNotMappedError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.fx_snapshot import SnapshotType
from settlement_kernel.selectors.payment_selector import PaymentSelector
from settlement_kernel.selectors.settings_selector import SettingsSelector
from settlement_kernel.services.ledger_service import LedgerService

from settlement_sync.accounting.base import AccountingGateway, InvoiceRequest, PaymentRequest
from settlement_sync.domain.narration import SettlementFx, build_narration, payment_reference
from settlement_sync.domain.types import SyncResult

logger = get_logger("sync.orchestrator")


class SyncOrchestrator:
    def __init__(
        self,
        session: Session,
        gateway: AccountingGateway,
        clock: Clock | None = None,
    ):
        self._session = session
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._payments = PaymentSelector(session)
        self._settings = SettingsSelector(session)
        self._ledger = LedgerService(session, self._clock)

    def sync_payment(self, payment_id: UUID, organization_id: UUID) -> SyncResult:
        """
        Sync one payment end to end.

        Raises:
            PaymentNotFoundError: no such payment in this organization.
            PaymentNotSettledError: the payment is not PAID.
            ConfirmationEventNotFoundError: no PAYMENT_CONFIRMED event.
            InvalidConfirmationError: the event lacks a transaction reference.
            ClearingAccountNotMappedError / RevenueAccountNotMappedError:
                merchant account mappings are incomplete.
            AccountingApiError / AccountingTransportError /
            MissingCredentialsError: raised by the gateway.
        """
        with LogContext.bind(payment_id=str(payment_id), organization_id=str(organization_id)):
            payment = self._payments.get_payment(payment_id, organization_id)
            if payment is None:
                raise PaymentNotFoundError(str(payment_id))
            if payment.status is not PaymentStatus.PAID:
                raise PaymentNotSettledError(str(payment_id), payment.status.value)

            event = self._payments.latest_confirmation(payment_id)
            if event is None:
                raise ConfirmationEventNotFoundError(str(payment_id))

            confirmation = parse_confirmation(
                event.payment_method,
                event.external_reference,
                event.metadata,
                amount_received=event.amount_received,
                currency_received=event.currency_received,
                payment_id=str(payment_id),
            )
            rail = confirmation.rail

            settings = self._settings.get_settings_model(organization_id)
            clearing_account_id = settings.clearing_account_for(rail) if settings else None
            if not clearing_account_id:
                raise ClearingAccountNotMappedError(str(organization_id), rail.label)
            if not settings.revenue_account_id:
                raise RevenueAccountNotMappedError(str(organization_id))

            fx = None
            if isinstance(confirmation, CryptoConfirmation):
                snapshot = self._settings.snapshot_rate(
                    payment_id, SnapshotType.SETTLEMENT, confirmation.token
                )
                if snapshot is not None:
                    fx = SettlementFx(rate=snapshot.rate, captured_at=snapshot.captured_at)
                else:
                    logger.warning(
                        "settlement_snapshot_missing",
                        extra={"token": confirmation.token.value},
                    )

            narration = build_narration(
                confirmation, amount=payment.amount, currency=payment.currency, fx=fx
            )

            invoice = self._gateway.create_invoice(
                InvoiceRequest(
                    payment_id=payment_id,
                    organization_id=organization_id,
                    amount=payment.amount,
                    currency=payment.currency,
                    revenue_account_id=settings.revenue_account_id,
                    description=payment.description,
                    invoice_reference=payment.invoice_reference or payment.short_code,
                    customer_email=payment.customer_email,
                )
            )
            remote_payment = self._gateway.create_payment(
                PaymentRequest(
                    payment_id=payment_id,
                    organization_id=organization_id,
                    invoice_id=invoice.invoice_id,
                    account_id=clearing_account_id,
                    amount=payment.amount,
                    currency=payment.currency,
                    paid_at=payment.paid_at or event.created_at or self._clock.now(),
                    reference=payment_reference(confirmation),
                    narration=narration,
                )
            )

            posting = self._ledger.post_settlement(
                organization_id=organization_id,
                payment_id=payment_id,
                rail=rail,
                amount=payment.amount,
                currency=payment.currency,
            )

            logger.info(
                "payment_synced",
                extra={
                    "rail": rail.value,
                    "invoice_id": invoice.invoice_id,
                    "remote_payment_id": remote_payment.payment_id,
                    "ledger_posting_created": posting.created,
                },
            )
            return SyncResult(
                invoice_id=invoice.invoice_id,
                invoice_number=invoice.invoice_number,
                payment_id=remote_payment.payment_id,
                narration=narration,
                ledger_posting_created=posting.created,
            )
