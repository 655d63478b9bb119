"""
Settlement configuration schema.

Frozen dataclasses parsed from YAML by ``settlement_config.loader``.  Every
tunable the engine exposes lives here: cache TTLs per volatility class, the
rate provider chain, the sync retry table and the reconciliation tolerance.
Defaults mirror ``defaults.yaml`` so a partially specified file still yields
a complete configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class RateCacheConfig:
    max_entries: int = 1000
    volatile_ttl_seconds: float = 60
    pegged_ttl_seconds: float = 300
    default_ttl_seconds: float = 60
    cleanup_interval_seconds: float = 300


@dataclass(frozen=True)
class RateProviderConfig:
    """One entry of the provider chain; lower priority is tried first."""

    name: str
    priority: int
    enabled: bool = True
    base_url: str | None = None
    api_key: str | None = None
    timeout_seconds: float = 10.0
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SyncQueueConfig:
    batch_size: int = 10
    inter_job_delay_seconds: float = 0.5
    poll_interval_seconds: float = 60
    retry_schedule_seconds: tuple[int, ...] = (60, 300, 900, 3600, 21600)


@dataclass(frozen=True)
class ReconciliationConfig:
    tolerance: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class AccountingConfig:
    base_url: str | None = None
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class SettlementConfig:
    database_url: str = "sqlite:///settlement.db"
    log_level: str = "INFO"
    rate_cache: RateCacheConfig = field(default_factory=RateCacheConfig)
    providers: tuple[RateProviderConfig, ...] = ()
    sync_queue: SyncQueueConfig = field(default_factory=SyncQueueConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    accounting: AccountingConfig = field(default_factory=AccountingConfig)

    def enabled_providers(self) -> tuple[RateProviderConfig, ...]:
        return tuple(
            sorted((p for p in self.providers if p.enabled), key=lambda p: p.priority)
        )
