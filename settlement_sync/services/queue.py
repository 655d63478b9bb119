"""
SyncQueueService -- durable, idempotent accounting sync queue.

Contract:
    ``enqueue`` is an atomic insert-or-update on UNIQUE (payment_id,
    sync_kind): a new row starts PENDING with retry_count 0; an existing
    non-SUCCESS row is re-armed to PENDING and due now without touching
    retry_count; a SUCCESS row is left alone.  Concurrent enqueues of the
    same payment therefore always converge on a single row.

    State transitions (PENDING -> RETRYING -> SUCCESS | FAILED) are made by
    ``mark_in_progress``, ``mark_success`` and ``mark_failed``.  None of
    these commit; the caller owns the transaction.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - retry_count increases by exactly one per recorded failure.
    - A job is FAILED when its error is permanent or the retry table is
      exhausted; FAILED and SUCCESS jobs have next_retry_at NULL.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.exceptions import SettlementConfigurationError, SyncJobNotFoundError
from settlement_kernel.logging_config import get_logger

from settlement_sync.domain.classification import categorize_error, classify_exception
from settlement_sync.domain.retry import RetrySchedule
from settlement_sync.domain.types import (
    ErrorClassification,
    SyncJobView,
    SyncKind,
    SyncResult,
    SyncStatus,
)
from settlement_sync.models.sync_job import SyncJobModel

logger = get_logger("sync.queue")

_ACTIVE_STATUSES = (SyncStatus.PENDING.value, SyncStatus.RETRYING.value)


def _iso(value: datetime) -> str:
    return value.isoformat()


def _dialect_insert(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise SettlementConfigurationError(
            f"Sync queue upsert is not supported on the {dialect!r} dialect"
        )
    return insert


class SyncQueueService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        retry_schedule: RetrySchedule | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._retry_schedule = retry_schedule or RetrySchedule()

    @property
    def retry_schedule(self) -> RetrySchedule:
        return self._retry_schedule

    # -------------------------------------------------------------------------
    # Enqueue
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        payment_id: UUID,
        organization_id: UUID,
        *,
        priority: int = 0,
        sync_kind: SyncKind = SyncKind.INVOICE,
    ) -> UUID:
        """Create or re-arm the sync job for a payment and return its id."""
        now = self._clock.now()
        insert = _dialect_insert(self._session)
        table = SyncJobModel.__table__

        stmt = insert(table).values(
            id=uuid4(),
            payment_id=payment_id,
            organization_id=organization_id,
            sync_kind=sync_kind.value,
            status=SyncStatus.PENDING.value,
            retry_count=0,
            next_retry_at=now,
            request_payload={"queued_at": _iso(now), "priority": priority},
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["payment_id", "sync_kind"],
            set_={
                "status": SyncStatus.PENDING.value,
                "next_retry_at": now,
                "request_payload": {"requeued_at": _iso(now), "priority": priority},
                "updated_at": now,
            },
            where=table.c.status != SyncStatus.SUCCESS.value,
        ).returning(table.c.id)

        job_id = self._session.execute(stmt).scalar_one_or_none()
        if job_id is None:
            # Conflict with a SUCCESS row: nothing was written.
            job_id = self._session.execute(
                select(table.c.id).where(
                    table.c.payment_id == payment_id,
                    table.c.sync_kind == sync_kind.value,
                )
            ).scalar_one()
            logger.info(
                "sync_job_already_succeeded",
                extra={"payment_id": str(payment_id), "sync_job_id": str(job_id)},
            )
            return job_id

        logger.info(
            "sync_job_enqueued",
            extra={
                "payment_id": str(payment_id),
                "organization_id": str(organization_id),
                "sync_job_id": str(job_id),
                "priority": priority,
            },
        )
        return job_id

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _load(self, job_id: UUID) -> SyncJobModel:
        job = self._session.get(SyncJobModel, job_id, populate_existing=True)
        if job is None:
            raise SyncJobNotFoundError(str(job_id))
        return job

    def get_job(self, job_id: UUID) -> SyncJobView:
        return self._load(job_id).to_dto()

    def get_job_for_payment(
        self,
        payment_id: UUID,
        sync_kind: SyncKind = SyncKind.INVOICE,
    ) -> SyncJobView | None:
        job = self._session.execute(
            select(SyncJobModel)
            .where(
                SyncJobModel.payment_id == payment_id,
                SyncJobModel.sync_kind == sync_kind.value,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return job.to_dto() if job is not None else None

    def get_pending_jobs(self, batch_size: int = 10) -> list[SyncJobView]:
        """Jobs that are due now, oldest due first."""
        now = self._clock.now()
        rows = self._session.execute(
            select(SyncJobModel)
            .where(
                SyncJobModel.status.in_(_ACTIVE_STATUSES),
                or_(
                    SyncJobModel.next_retry_at.is_(None),
                    SyncJobModel.next_retry_at <= now,
                ),
            )
            .order_by(SyncJobModel.next_retry_at, SyncJobModel.created_at)
            .limit(batch_size)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    @staticmethod
    def result_of(job: SyncJobView) -> SyncResult | None:
        """The SyncResult recorded by mark_success, if the job succeeded."""
        payload = job.response_payload or {}
        if job.status is not SyncStatus.SUCCESS or not payload.get("success"):
            return None
        return SyncResult(
            invoice_id=payload["invoice_id"],
            invoice_number=payload.get("invoice_number"),
            payment_id=payload["payment_id"],
            narration=payload.get("narration", ""),
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def mark_in_progress(self, job_id: UUID) -> SyncJobView:
        job = self._load(job_id)
        job.status = SyncStatus.RETRYING.value
        job.updated_at = self._clock.now()
        self._session.flush()
        return job.to_dto()

    def mark_success(self, job_id: UUID, result: SyncResult) -> SyncJobView:
        now = self._clock.now()
        job = self._load(job_id)
        job.status = SyncStatus.SUCCESS.value
        job.remote_invoice_id = result.invoice_id
        job.remote_payment_id = result.payment_id
        job.next_retry_at = None
        job.error_message = None
        job.error_code = None
        job.response_payload = {
            "success": True,
            "invoice_id": result.invoice_id,
            "invoice_number": result.invoice_number,
            "payment_id": result.payment_id,
            "narration": result.narration,
            "completed_at": _iso(now),
        }
        job.updated_at = now
        self._session.flush()

        logger.info(
            "sync_job_succeeded",
            extra={
                "sync_job_id": str(job_id),
                "payment_id": str(job.payment_id),
                "invoice_id": result.invoice_id,
                "retry_count": job.retry_count,
            },
        )
        return job.to_dto()

    def mark_failed(self, job_id: UUID, error: BaseException | str) -> SyncJobView:
        """
        Record a failed attempt and schedule the next one.

        The delay is looked up with the retry count *before* this failure,
        so the first failure waits the first entry of the table.  The job
        is FAILED once the recorded failures reach the table length.
        """
        now = self._clock.now()
        classification = _classify(error)
        job = self._load(job_id)

        previous_count = job.retry_count
        next_retry_at = self._retry_schedule.next_retry_time(previous_count, now)
        job.retry_count = previous_count + 1

        will_retry = (
            classification.retryable
            and next_retry_at is not None
            and job.retry_count < self._retry_schedule.max_retries
        )
        if will_retry:
            job.status = SyncStatus.RETRYING.value
            job.next_retry_at = next_retry_at
        else:
            job.status = SyncStatus.FAILED.value
            job.next_retry_at = None

        job.error_message = classification.message
        job.error_code = classification.code or classification.category.value
        job.response_payload = _failure_payload(classification, now, job.retry_count)
        job.updated_at = now
        self._session.flush()

        log = logger.warning if will_retry else logger.error
        log(
            "sync_job_failed",
            extra={
                "sync_job_id": str(job_id),
                "payment_id": str(job.payment_id),
                "error_type": classification.category.value,
                "error_code": job.error_code,
                "retryable": classification.retryable,
                "retry_count": job.retry_count,
                "next_retry_at": _iso(next_retry_at) if will_retry else None,
                "status": job.status,
            },
        )
        return job.to_dto()


def _classify(error: BaseException | str) -> ErrorClassification:
    if isinstance(error, BaseException):
        return classify_exception(error)
    return ErrorClassification(category=categorize_error(error), message=error)


def _failure_payload(
    classification: ErrorClassification,
    failed_at: datetime,
    retry_count: int,
) -> dict[str, Any]:
    return {
        "success": False,
        "error": classification.message,
        "error_type": classification.category.value,
        "error_code": classification.code,
        "retryable": classification.retryable,
        "failed_at": _iso(failed_at),
        "retry_count": retry_count,
    }
