"""
settlement_sync.domain.types -- frozen dataclasses and enums for the sync queue.

ZERO I/O.  ORM rows are converted to these at the service boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class SyncStatus(str, Enum):
    PENDING = "PENDING"  # Queued, due at next_retry_at
    RETRYING = "RETRYING"  # Being attempted, or waiting for backoff
    SUCCESS = "SUCCESS"  # Terminal
    FAILED = "FAILED"  # Terminal until manual replay

    @property
    def is_terminal(self) -> bool:
        return self in (SyncStatus.SUCCESS, SyncStatus.FAILED)


class SyncKind(str, Enum):
    INVOICE = "INVOICE"  # Invoice creation + payment recording


class ErrorCategory(str, Enum):
    PERMANENT = "PERMANENT"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK = "NETWORK"
    API_ERROR = "API_ERROR"
    UNKNOWN = "UNKNOWN"

    @property
    def retryable(self) -> bool:
        return self is not ErrorCategory.PERMANENT


@dataclass(frozen=True)
class ErrorClassification:
    category: ErrorCategory
    message: str
    code: str | None = None

    @property
    def retryable(self) -> bool:
        return self.category.retryable


@dataclass(frozen=True)
class SyncJobView:
    job_id: UUID
    payment_id: UUID
    organization_id: UUID
    sync_kind: SyncKind
    status: SyncStatus
    retry_count: int
    next_retry_at: datetime | None
    error_message: str | None
    error_code: str | None
    remote_invoice_id: str | None
    remote_payment_id: str | None
    request_payload: dict[str, Any] = field(default_factory=dict)
    response_payload: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class SyncResult:
    """What a successful orchestration produced in the remote system."""

    invoice_id: str
    invoice_number: str | None
    payment_id: str
    narration: str
    ledger_posting_created: bool = False


@dataclass(frozen=True)
class JobError:
    job_id: UUID
    error: str


@dataclass(frozen=True)
class ProcessQueueStats:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: tuple[JobError, ...] = ()


@dataclass(frozen=True)
class SyncStatistics:
    total: int
    pending: int
    retrying: int
    success: int
    failed: int
    success_rate: Decimal
    failure_rate: Decimal


@dataclass(frozen=True)
class ManualSyncOutcome:
    """Result of a synchronous manual replay."""

    job_id: UUID | None
    success: bool
    error: str | None = None
    result: SyncResult | None = None
