"""Sync queue ORM models."""

from settlement_sync.models.sync_job import SyncJobModel

__all__ = ["SyncJobModel"]
