"""
ConfirmationService -- entry point for a confirmed payment.

Contract:
    ``handle_confirmation`` pins the settlement FX rate for crypto rails,
    then either enqueues the accounting sync or, for organizations without
    an accounting integration, posts the settlement to the ledger directly
    at the payment's invoiced amount. An unknown payment raises
    PaymentNotFoundError.
    A failed snapshot capture is logged and does not block the rest.
    The caller owns the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.payments import PaymentConfirmation
from settlement_kernel.exceptions import PaymentNotFoundError, SettlementError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.selectors.payment_selector import PaymentSelector
from settlement_kernel.selectors.settings_selector import SettingsSelector
from settlement_kernel.services.ledger_service import LedgerService

from settlement_fx.snapshot_service import FxSnapshotRecord, FxSnapshotService
from settlement_sync.domain.retry import RetrySchedule
from settlement_sync.services.queue import SyncQueueService

logger = get_logger("services.confirmation")


@dataclass(frozen=True)
class ConfirmationOutcome:
    payment_id: UUID
    settlement_snapshot: FxSnapshotRecord | None = None
    sync_job_id: UUID | None = None
    ledger_posting_id: UUID | None = None


class ConfirmationService:
    def __init__(
        self,
        session: Session,
        snapshots: FxSnapshotService,
        clock: Clock | None = None,
        retry_schedule: RetrySchedule | None = None,
    ):
        self._clock = clock or SystemClock()
        self._snapshots = snapshots
        self._settings = SettingsSelector(session)
        self._payments = PaymentSelector(session)
        self._queue = SyncQueueService(session, self._clock, retry_schedule)
        self._ledger = LedgerService(session, self._clock)

    def handle_confirmation(self, confirmation: PaymentConfirmation) -> ConfirmationOutcome:
        with LogContext.bind(
            payment_id=str(confirmation.payment_id),
            organization_id=str(confirmation.organization_id),
        ):
            snapshot = self._capture_settlement_snapshot(confirmation)

            if self._settings.accounting_enabled(confirmation.organization_id):
                job_id = self._queue.enqueue(
                    confirmation.payment_id, confirmation.organization_id
                )
                return ConfirmationOutcome(
                    payment_id=confirmation.payment_id,
                    settlement_snapshot=snapshot,
                    sync_job_id=job_id,
                )

            # Receivable is carried at the invoiced amount, not the amount
            # received on-chain.
            payment = self._payments.get_payment(
                confirmation.payment_id, confirmation.organization_id
            )
            if payment is None:
                raise PaymentNotFoundError(str(confirmation.payment_id))

            posting = self._ledger.post_settlement(
                organization_id=confirmation.organization_id,
                payment_id=confirmation.payment_id,
                rail=confirmation.rail,
                amount=payment.amount,
                currency=payment.currency,
            )
            logger.info(
                "settlement_posted_without_accounting",
                extra={"rail": confirmation.rail.value, "posting_id": str(posting.posting_id)},
            )
            return ConfirmationOutcome(
                payment_id=confirmation.payment_id,
                settlement_snapshot=snapshot,
                ledger_posting_id=posting.posting_id,
            )

    def _capture_settlement_snapshot(
        self,
        confirmation: PaymentConfirmation,
    ) -> FxSnapshotRecord | None:
        token = confirmation.token
        if token is None:
            return None
        try:
            return self._snapshots.capture_settlement_snapshot(
                confirmation.payment_id,
                token.value,
                confirmation.currency,
                token,
            )
        except SettlementError as exc:
            logger.warning(
                "settlement_snapshot_failed",
                extra={
                    "token": token.value,
                    "quote": confirmation.currency,
                    "error_code": exc.code,
                    "error": str(exc),
                },
            )
            return None
