"""Read-only sync queue queries for dashboards and operators."""

from settlement_sync.selectors.sync_selector import SyncSelector

__all__ = ["SyncSelector"]
