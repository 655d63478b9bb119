"""
ORM model for the accounting sync queue.

Contract:
    SyncJobModel persists one sync attempt chain per (payment, kind).  Rows
    are created and re-armed only through SyncQueueService.enqueue, which
    uses an atomic insert-or-update on the unique key.

Architecture: settlement_sync/models.  Imports from settlement_kernel.db.base only.

Invariants enforced:
    - UNIQUE (payment_id, sync_kind).
    - retry_count is set to 0 on first insert and only ever incremented.
    - SUCCESS rows are never re-armed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase, UTCDateTime, UUIDString

from settlement_sync.domain.types import SyncJobView, SyncKind, SyncStatus


class SyncJobModel(TrackedBase):
    __tablename__ = "sync_jobs"

    __table_args__ = (
        UniqueConstraint("payment_id", "sync_kind", name="uq_sync_jobs_payment_kind"),
        Index("ix_sync_jobs_status_next_retry", "status", "next_retry_at"),
        Index("ix_sync_jobs_organization", "organization_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    sync_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    retry_count: Mapped[int] = mapped_column(default=0, nullable=False)
    next_retry_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    request_payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    response_payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    remote_invoice_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    remote_payment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_dto(self) -> SyncJobView:
        return SyncJobView(
            job_id=self.id,
            payment_id=self.payment_id,
            organization_id=self.organization_id,
            sync_kind=SyncKind(self.sync_kind),
            status=SyncStatus(self.status),
            retry_count=self.retry_count,
            next_retry_at=self.next_retry_at,
            error_message=self.error_message,
            error_code=self.error_code,
            remote_invoice_id=self.remote_invoice_id,
            remote_payment_id=self.remote_payment_id,
            request_payload=self.request_payload or {},
            response_payload=self.response_payload,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<SyncJob {self.sync_kind} payment={self.payment_id} "
            f"{self.status} retries={self.retry_count}>"
        )
