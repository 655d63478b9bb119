"""Rate providers and the factory that builds the configured chain."""

from __future__ import annotations

from collections.abc import Iterable

import httpx

from settlement_config.schema import RateProviderConfig
from settlement_kernel.domain.clock import Clock

from settlement_fx.providers.base import RateProvider
from settlement_fx.providers.coingecko import CoinGeckoProvider
from settlement_fx.providers.hedera_mirror import HederaMirrorProvider


def build_provider(
    config: RateProviderConfig,
    *,
    clock: Clock | None = None,
    transport: httpx.BaseTransport | None = None,
) -> RateProvider:
    """Instantiate one configured provider by name."""
    common = {
        "priority": config.priority,
        "timeout_seconds": config.timeout_seconds,
        "clock": clock,
        "transport": transport,
        "base_url": config.base_url,
    }
    if config.name == CoinGeckoProvider.name:
        return CoinGeckoProvider(api_key=config.api_key, **common)
    if config.name == HederaMirrorProvider.name:
        return HederaMirrorProvider(
            usd_aud_rate=config.options.get("usd_aud_rate", "1.52"), **common
        )
    raise ValueError(f"Unknown rate provider: {config.name}")


def build_providers(
    configs: Iterable[RateProviderConfig],
    *,
    clock: Clock | None = None,
) -> list[RateProvider]:
    """Enabled providers ordered by priority (lowest first)."""
    providers = [build_provider(c, clock=clock) for c in configs if c.enabled]
    return sorted(providers, key=lambda p: p.priority)


__all__ = [
    "CoinGeckoProvider",
    "HederaMirrorProvider",
    "RateProvider",
    "build_provider",
    "build_providers",
]
