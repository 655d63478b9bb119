"""Pure sync-queue domain: statuses, retry table, error classification, narration."""

from settlement_sync.domain.classification import categorize_error, classify_exception
from settlement_sync.domain.narration import SettlementFx, build_narration, payment_reference
from settlement_sync.domain.retry import DEFAULT_RETRY_SCHEDULE_SECONDS, RetrySchedule
from settlement_sync.domain.types import (
    ErrorCategory,
    ErrorClassification,
    JobError,
    ManualSyncOutcome,
    ProcessQueueStats,
    SyncJobView,
    SyncKind,
    SyncResult,
    SyncStatistics,
    SyncStatus,
)

__all__ = [
    "DEFAULT_RETRY_SCHEDULE_SECONDS",
    "ErrorCategory",
    "ErrorClassification",
    "JobError",
    "ManualSyncOutcome",
    "ProcessQueueStats",
    "RetrySchedule",
    "SettlementFx",
    "SyncJobView",
    "SyncKind",
    "SyncResult",
    "SyncStatistics",
    "SyncStatus",
    "build_narration",
    "categorize_error",
    "classify_exception",
    "payment_reference",
]
