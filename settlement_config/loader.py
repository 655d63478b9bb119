"""
Configuration loader (``settlement_config.loader``).

Responsibility
--------------
Reads YAML with PyYAML and parses it into the frozen dataclasses of
``settlement_config.schema``.  Environment overrides are applied last.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Provider entry without ``name``/``priority``  -> ``KeyError``.
* Non-positive retry delays or tolerance  -> ``ValueError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import (
    AccountingConfig,
    RateCacheConfig,
    RateProviderConfig,
    ReconciliationConfig,
    SettlementConfig,
    SyncQueueConfig,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")
    return data


def parse_rate_cache(data: Mapping[str, Any]) -> RateCacheConfig:
    defaults = RateCacheConfig()
    return RateCacheConfig(
        max_entries=int(data.get("max_entries", defaults.max_entries)),
        volatile_ttl_seconds=float(data.get("volatile_ttl_seconds", defaults.volatile_ttl_seconds)),
        pegged_ttl_seconds=float(data.get("pegged_ttl_seconds", defaults.pegged_ttl_seconds)),
        default_ttl_seconds=float(data.get("default_ttl_seconds", defaults.default_ttl_seconds)),
        cleanup_interval_seconds=float(
            data.get("cleanup_interval_seconds", defaults.cleanup_interval_seconds)
        ),
    )


def parse_provider(data: Mapping[str, Any]) -> RateProviderConfig:
    return RateProviderConfig(
        name=data["name"],
        priority=int(data["priority"]),
        enabled=bool(data.get("enabled", True)),
        base_url=data.get("base_url"),
        api_key=data.get("api_key"),
        timeout_seconds=float(data.get("timeout_seconds", 10.0)),
        options=dict(data.get("options") or {}),
    )


def parse_sync_queue(data: Mapping[str, Any]) -> SyncQueueConfig:
    defaults = SyncQueueConfig()
    schedule = tuple(
        int(s) for s in data.get("retry_schedule_seconds", defaults.retry_schedule_seconds)
    )
    if any(s <= 0 for s in schedule):
        raise ValueError(f"retry_schedule_seconds must be positive: {schedule}")
    return SyncQueueConfig(
        batch_size=int(data.get("batch_size", defaults.batch_size)),
        inter_job_delay_seconds=float(
            data.get("inter_job_delay_seconds", defaults.inter_job_delay_seconds)
        ),
        poll_interval_seconds=float(data.get("poll_interval_seconds", defaults.poll_interval_seconds)),
        retry_schedule_seconds=schedule,
    )


def parse_reconciliation(data: Mapping[str, Any]) -> ReconciliationConfig:
    tolerance = Decimal(str(data.get("tolerance", ReconciliationConfig.tolerance)))
    if tolerance <= 0:
        raise ValueError(f"reconciliation tolerance must be positive: {tolerance}")
    return ReconciliationConfig(tolerance=tolerance)


def parse_accounting(data: Mapping[str, Any]) -> AccountingConfig:
    return AccountingConfig(
        base_url=data.get("base_url"),
        timeout_seconds=float(data.get("timeout_seconds", AccountingConfig.timeout_seconds)),
    )


def parse_settlement_config(data: Mapping[str, Any]) -> SettlementConfig:
    defaults = SettlementConfig()
    return SettlementConfig(
        database_url=data.get("database_url", defaults.database_url),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
        rate_cache=parse_rate_cache(data.get("rate_cache") or {}),
        providers=tuple(parse_provider(p) for p in data.get("providers") or ()),
        sync_queue=parse_sync_queue(data.get("sync_queue") or {}),
        reconciliation=parse_reconciliation(data.get("reconciliation") or {}),
        accounting=parse_accounting(data.get("accounting") or {}),
    )


def apply_env_overrides(
    config: SettlementConfig,
    env: Mapping[str, str],
) -> SettlementConfig:
    """DATABASE_URL, SETTLEMENT_LOG_LEVEL, COINGECKO_API_KEY, ACCOUNTING_BASE_URL."""
    if env.get("DATABASE_URL"):
        config = replace(config, database_url=env["DATABASE_URL"])
    if env.get("SETTLEMENT_LOG_LEVEL"):
        config = replace(config, log_level=env["SETTLEMENT_LOG_LEVEL"].upper())
    if env.get("COINGECKO_API_KEY"):
        config = replace(
            config,
            providers=tuple(
                replace(p, api_key=env["COINGECKO_API_KEY"]) if p.name == "coingecko" else p
                for p in config.providers
            ),
        )
    if env.get("ACCOUNTING_BASE_URL"):
        config = replace(
            config,
            accounting=replace(config.accounting, base_url=env["ACCOUNTING_BASE_URL"]),
        )
    return config


def load_config(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> SettlementConfig:
    """Load ``path`` (or SETTLEMENT_CONFIG, or the bundled defaults)."""
    env = os.environ if env is None else env
    if path is None:
        path = env.get("SETTLEMENT_CONFIG") or DEFAULTS_PATH
    config = parse_settlement_config(load_yaml_file(Path(path)))
    return apply_env_overrides(config, env)
