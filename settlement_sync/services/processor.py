"""
QueueProcessor -- pulls due sync jobs and runs them one at a time.

Contract:
    Each job runs in its own transaction: the claim is committed, the
    orchestration either commits with the SUCCESS transition or is rolled
    back before the failure is recorded and committed.  A failing job never
    takes down the batch; unexpected exceptions are logged, recorded as a
    failure of that job and reported in ``ProcessQueueStats.errors``.

Non-goals:
    - No parallelism within a batch; jobs run sequentially with a fixed
      delay between them to stay under remote rate limits.
    - No per-job timers; retries are picked up by a later ``process_queue``.
"""

from __future__ import annotations

import time
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.payments import PaymentStatus
from settlement_kernel.exceptions import PaymentNotSettledError, SettlementError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.selectors.payment_selector import PaymentSelector

from settlement_sync.accounting.base import AccountingGateway
from settlement_sync.domain.retry import RetrySchedule
from settlement_sync.domain.types import (
    JobError,
    ManualSyncOutcome,
    ProcessQueueStats,
    SyncJobView,
    SyncStatus,
)
from settlement_sync.services.orchestrator import SyncOrchestrator
from settlement_sync.services.queue import SyncQueueService

logger = get_logger("sync.processor")

_SUCCEEDED = "succeeded"
_FAILED = "failed"
_SKIPPED = "skipped"


class QueueProcessor:
    def __init__(
        self,
        session: Session,
        gateway: AccountingGateway,
        clock: Clock | None = None,
        *,
        retry_schedule: RetrySchedule | None = None,
        batch_size: int = 10,
        inter_job_delay_seconds: float = 0.5,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._queue = SyncQueueService(session, self._clock, retry_schedule)
        self._orchestrator = SyncOrchestrator(session, gateway, self._clock)
        self._payments = PaymentSelector(session)
        self._batch_size = batch_size
        self._delay = inter_job_delay_seconds

    @property
    def queue(self) -> SyncQueueService:
        return self._queue

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    def process_queue(self, batch_size: int | None = None) -> ProcessQueueStats:
        """Process up to ``batch_size`` due jobs and report what happened."""
        limit = batch_size or self._batch_size
        jobs = self._queue.get_pending_jobs(limit)
        if not jobs:
            logger.info("sync_queue_empty", extra={"batch_size": limit})
            return ProcessQueueStats()

        logger.info("sync_queue_batch_started", extra={"batch_size": limit, "count": len(jobs)})

        processed = succeeded = failed = skipped = 0
        errors: list[JobError] = []
        ran_previous = False

        for job in jobs:
            processed += 1
            if not self._is_payment_settled(job):
                skipped += 1
                continue

            if ran_previous and self._delay > 0:
                time.sleep(self._delay)
            ran_previous = True

            outcome, error = self._run_job(job)
            if outcome == _SUCCEEDED:
                succeeded += 1
            elif outcome == _SKIPPED:
                skipped += 1
            else:
                failed += 1
                errors.append(JobError(job.job_id, error or "Unknown error"))

        stats = ProcessQueueStats(
            processed=processed,
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            errors=tuple(errors),
        )
        logger.info(
            "sync_queue_batch_completed",
            extra={
                "processed": stats.processed,
                "succeeded": stats.succeeded,
                "failed": stats.failed,
                "skipped": stats.skipped,
            },
        )
        return stats

    # -------------------------------------------------------------------------
    # Manual replay
    # -------------------------------------------------------------------------

    def process_job(self, job_id: UUID) -> ManualSyncOutcome:
        """Run one job now, if it is PENDING or RETRYING."""
        job = self._queue.get_job(job_id)
        if job.status not in (SyncStatus.PENDING, SyncStatus.RETRYING):
            return ManualSyncOutcome(
                job_id=job_id,
                success=False,
                error=f"Sync job is not in a processable state: {job.status.value}",
            )
        payment = self._payments.get_payment(job.payment_id, job.organization_id)
        if payment is not None and payment.status is not PaymentStatus.PAID:
            return ManualSyncOutcome(
                job_id=job_id,
                success=False,
                error=f"Payment not in PAID status: {payment.status.value}",
            )

        outcome, error = self._run_job(job)
        if outcome != _SUCCEEDED:
            return ManualSyncOutcome(job_id=job_id, success=False, error=error)

        final = self._queue.get_job(job_id)
        result = self._queue.result_of(final)
        return ManualSyncOutcome(job_id=job_id, success=True, result=result)

    def replay_payment(self, payment_id: UUID, organization_id: UUID) -> ManualSyncOutcome:
        """Re-arm the payment's sync job (creating it if needed) and run it."""
        job_id = self._queue.enqueue(payment_id, organization_id)
        self._session.commit()
        logger.info(
            "sync_replay_requested",
            extra={"payment_id": str(payment_id), "sync_job_id": str(job_id)},
        )
        return self.process_job(job_id)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _is_payment_settled(self, job: SyncJobView) -> bool:
        payment = self._payments.get_payment(job.payment_id, job.organization_id)
        if payment is None or payment.status is PaymentStatus.PAID:
            return True
        logger.warning(
            "sync_job_skipped",
            extra={
                "sync_job_id": str(job.job_id),
                "payment_id": str(job.payment_id),
                "status": payment.status.value,
            },
        )
        return False

    def _run_job(self, job: SyncJobView) -> tuple[str, str | None]:
        with LogContext.bind(sync_job_id=str(job.job_id), payment_id=str(job.payment_id)):
            self._queue.mark_in_progress(job.job_id)
            self._session.commit()

            logger.info("sync_job_started", extra={"retry_count": job.retry_count})
            try:
                result = self._orchestrator.sync_payment(job.payment_id, job.organization_id)
                self._queue.mark_success(job.job_id, result)
                self._session.commit()
                return _SUCCEEDED, None
            except PaymentNotSettledError as exc:
                self._session.rollback()
                logger.warning("sync_job_skipped", extra={"reason": str(exc)})
                return _SKIPPED, str(exc)
            except SettlementError as exc:
                self._session.rollback()
                self._queue.mark_failed(job.job_id, exc)
                self._session.commit()
                return _FAILED, str(exc)
            except Exception as exc:
                self._session.rollback()
                logger.exception("sync_job_unexpected_error")
                self._queue.mark_failed(job.job_id, exc)
                self._session.commit()
                return _FAILED, str(exc) or type(exc).__name__
