"""
RateService -- provider aggregation, caching and batched lookups.

Contract:
    - ``get_rate`` consults the cache first (single-flight via
      ``RateCache.get_or_set``) and otherwise walks the provider chain in
      priority order, falling through on provider errors.
    - ``get_rate(..., use_cache=False)`` always fetches fresh and refreshes
      the cache entry; settlement snapshots use this path.
    - ``get_rates`` groups cache misses by quote currency, fetches the groups
      in parallel, and reports per-pair failures without failing the batch.
    - When no provider can price a pair, RateUnavailableError is raised (or
      recorded per pair for batches).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from settlement_kernel.domain.assets import PREWARM_QUOTES, CryptoToken
from settlement_kernel.domain.rates import CurrencyPair, ExchangeRate
from settlement_kernel.exceptions import (
    RateError,
    RateProviderError,
    RateUnavailableError,
    UnsupportedPairError,
)
from settlement_kernel.logging_config import get_logger

from settlement_fx.providers.base import RateProvider
from settlement_fx.rate_cache import RateCache, cache_key

logger = get_logger("fx.rate_service")


@dataclass(frozen=True)
class BatchRateResult:
    rates: dict[CurrencyPair, ExchangeRate] = field(default_factory=dict)
    errors: dict[CurrencyPair, RateError] = field(default_factory=dict)

    def get(self, base: str, quote: str) -> ExchangeRate | None:
        return self.rates.get(CurrencyPair(base, quote))


class RateService:
    def __init__(
        self,
        providers: Sequence[RateProvider],
        cache: RateCache,
        max_workers: int = 4,
    ):
        self._providers = sorted(providers, key=lambda p: p.priority)
        self._cache = cache
        self._max_workers = max_workers

    @property
    def cache(self) -> RateCache:
        return self._cache

    @property
    def providers(self) -> tuple[RateProvider, ...]:
        return tuple(self._providers)

    def get_rate(self, base: str, quote: str, *, use_cache: bool = True) -> ExchangeRate:
        """
        Raises:
            RateUnavailableError: every provider failed or none supports the pair.
        """
        if not use_cache:
            rate = self._fetch_one(base, quote)
            self._cache.set(rate)
            return rate
        return self._cache.get_or_set(
            cache_key(base, quote),
            lambda: self._fetch_one(base, quote),
            self._cache.ttl_for(base),
        )

    def get_rates(
        self,
        pairs: Iterable[CurrencyPair],
        *,
        use_cache: bool = True,
    ) -> BatchRateResult:
        unique = list(dict.fromkeys(pairs))
        result = BatchRateResult()

        misses: list[CurrencyPair] = []
        for pair in unique:
            cached = self._cache.get(pair.base, pair.quote) if use_cache else None
            if cached is not None:
                result.rates[pair] = cached
            else:
                misses.append(pair)

        by_quote: dict[str, list[CurrencyPair]] = defaultdict(list)
        for pair in misses:
            by_quote[pair.quote].append(pair)

        if by_quote:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                futures = [pool.submit(self._fetch_group, group) for group in by_quote.values()]
                for future in futures:
                    rates, errors = future.result()
                    result.rates.update(rates)
                    result.errors.update(errors)

        self._cache.set_many(r for p, r in result.rates.items() if p in misses)
        logger.info(
            "rate_batch_fetched",
            extra={
                "requested": len(unique),
                "cache_hits": len(unique) - len(misses),
                "fetched": len(misses) - len(result.errors),
                "failed": len(result.errors),
            },
        )
        return result

    def prewarm(self, quotes: Sequence[str] = PREWARM_QUOTES) -> int:
        """Load every token against ``quotes`` into the cache; returns count cached."""
        pairs = [CurrencyPair(t.value, q) for q in quotes for t in CryptoToken]
        result = self.get_rates(pairs, use_cache=False)
        if result.errors:
            logger.warning(
                "rate_prewarm_partial",
                extra={"failed_pairs": sorted(str(p) for p in result.errors)},
            )
        return len(result.rates)

    def close(self) -> None:
        for provider in self._providers:
            provider.close()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _fetch_one(self, base: str, quote: str) -> ExchangeRate:
        failures: list[str] = []
        for provider in self._providers:
            if not provider.supports_pair(base, quote):
                continue
            try:
                rate = provider.get_rate(base, quote)
            except (RateProviderError, UnsupportedPairError) as exc:
                failures.append(f"{provider.name}: {exc}")
                logger.warning(
                    "rate_provider_failed",
                    extra={"provider": provider.name, "pair": f"{base}/{quote}", "error": str(exc)},
                )
                continue
            logger.debug("rate_fetched", extra={"provider": provider.name, "pair": f"{base}/{quote}"})
            return rate

        reason = "ALL_PROVIDERS_FAILED" if failures else "NO_PROVIDER_SUPPORTS_PAIR"
        if failures:
            reason = f"{reason} ({'; '.join(failures)})"
        raise RateUnavailableError(base, quote, reason)

    def _fetch_group(
        self,
        pairs: list[CurrencyPair],
    ) -> tuple[dict[CurrencyPair, ExchangeRate], dict[CurrencyPair, RateError]]:
        remaining = list(pairs)
        rates: dict[CurrencyPair, ExchangeRate] = {}
        failures: dict[CurrencyPair, list[str]] = defaultdict(list)

        for provider in self._providers:
            supported = [p for p in remaining if provider.supports_pair(p.base, p.quote)]
            if not supported:
                continue
            try:
                fetched = provider.fetch_rates(supported)
            except (RateProviderError, UnsupportedPairError) as exc:
                logger.warning(
                    "rate_provider_failed",
                    extra={"provider": provider.name, "pairs": [str(p) for p in supported], "error": str(exc)},
                )
                for pair in supported:
                    failures[pair].append(f"{provider.name}: {exc}")
                continue
            rates.update(fetched)
            for pair in supported:
                if pair not in fetched:
                    failures[pair].append(f"{provider.name}: rate not found")
            remaining = [p for p in remaining if p not in rates]
            if not remaining:
                break

        errors: dict[CurrencyPair, RateError] = {}
        for pair in remaining:
            detail = "; ".join(failures.get(pair, [])) or "NO_PROVIDER_SUPPORTS_PAIR"
            errors[pair] = RateUnavailableError(pair.base, pair.quote, detail)
        return rates, errors
