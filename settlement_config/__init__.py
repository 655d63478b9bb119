"""
settlement_config -- runtime configuration for the settlement engine.

``get_active_config()`` is the single entry point services use; it loads
once per process and caches the result.  Tests build configs directly from
the schema dataclasses or call ``load_config`` with an explicit path.
"""

from __future__ import annotations

import threading

from settlement_config.loader import load_config
from settlement_config.schema import (
    AccountingConfig,
    RateCacheConfig,
    RateProviderConfig,
    ReconciliationConfig,
    SettlementConfig,
    SyncQueueConfig,
)

_active: SettlementConfig | None = None
_lock = threading.Lock()


def get_active_config() -> SettlementConfig:
    global _active
    with _lock:
        if _active is None:
            _active = load_config()
        return _active


def reset_active_config() -> None:
    """Forget the cached config. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None


__all__ = [
    "AccountingConfig",
    "RateCacheConfig",
    "RateProviderConfig",
    "ReconciliationConfig",
    "SettlementConfig",
    "SyncQueueConfig",
    "get_active_config",
    "load_config",
    "reset_active_config",
]
