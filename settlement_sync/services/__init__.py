"""Sync queue services: queue state, orchestration, processing, scheduling."""

from settlement_sync.services.orchestrator import SyncOrchestrator
from settlement_sync.services.processor import QueueProcessor
from settlement_sync.services.queue import SyncQueueService
from settlement_sync.services.scheduler import SyncQueueScheduler

__all__ = [
    "QueueProcessor",
    "SyncOrchestrator",
    "SyncQueueScheduler",
    "SyncQueueService",
]
