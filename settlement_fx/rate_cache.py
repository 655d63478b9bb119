"""
RateCache -- in-memory TTL cache in front of the rate providers.

Contract:
    - ``get`` / ``set`` work on ExchangeRate values keyed by ``BASE/QUOTE``
      (or ``BASE/QUOTE:provider``).  Expired entries are removed on read.
    - ``get_or_set`` is single-flight per key: while one caller runs the
      factory for a missing key, concurrent callers for the same key wait
      for that result (or that exception) instead of calling the factory
      themselves.
    - TTL depends on the base asset's volatility class (short for HBAR,
      long for pegged stablecoins).
    - When full, the entry closest to expiry is evicted before an insert.
    - An optional background thread sweeps expired entries.

Lifecycle:
    Built once at process start and injected into RateService; call
    ``stop_cleanup()`` at shutdown.  There is no module-level instance.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, TypeVar

from settlement_config.schema import RateCacheConfig
from settlement_kernel.domain.assets import token_profile
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.rates import ExchangeRate
from settlement_kernel.logging_config import get_logger

logger = get_logger("fx.rate_cache")

T = TypeVar("T")


def cache_key(base: str, quote: str, provider: str | None = None) -> str:
    key = f"{base}/{quote}"
    return f"{key}:{provider}" if provider else key


@dataclass
class _Entry:
    value: Any
    expires_at: float


@dataclass(frozen=True)
class CacheStats:
    size: int
    max_entries: int
    active_count: int
    expired_count: int
    hits: int
    misses: int


class RateCache:
    def __init__(self, config: RateCacheConfig | None = None, clock: Clock | None = None):
        self._config = config or RateCacheConfig()
        self._clock = clock or SystemClock()
        self._entries: dict[str, _Entry] = {}
        self._inflight: dict[str, Future] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None

    @property
    def max_entries(self) -> int:
        return self._config.max_entries

    def ttl_for(self, base: str) -> float:
        """TTL in seconds for rates whose base is ``base``."""
        profile = token_profile(base)
        if profile is None:
            return self._config.default_ttl_seconds
        if profile.is_pegged:
            return self._config.pegged_ttl_seconds
        return self._config.volatile_ttl_seconds

    # -------------------------------------------------------------------------
    # Exchange-rate API
    # -------------------------------------------------------------------------

    def get(self, base: str, quote: str, provider: str | None = None) -> ExchangeRate | None:
        return self.get_value(cache_key(base, quote, provider))

    def set(self, rate: ExchangeRate, ttl_seconds: float | None = None, *, by_provider: bool = False) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_for(rate.base)
        provider = rate.provider if by_provider else None
        with self._lock:
            self._store(cache_key(rate.base, rate.quote, provider), rate, ttl)

    def set_many(self, rates: Iterable[ExchangeRate]) -> None:
        for rate in rates:
            self.set(rate)

    def has(self, base: str, quote: str, provider: str | None = None) -> bool:
        key = cache_key(base, quote, provider)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._expired(entry):
                del self._entries[key]
                return False
            return True

    def delete(self, base: str, quote: str, provider: str | None = None) -> bool:
        with self._lock:
            return self._entries.pop(cache_key(base, quote, provider), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    # -------------------------------------------------------------------------
    # Generic keyed API
    # -------------------------------------------------------------------------

    def get_value(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._expired(entry):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def get_or_set(self, key: str, factory: Callable[[], T], ttl_seconds: float) -> T:
        """
        Return the cached value for ``key`` or compute it exactly once.

        All callers that arrive while the factory runs share its outcome;
        a factory exception is raised in every waiting caller and nothing
        is cached.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if not self._expired(entry):
                    self._hits += 1
                    return entry.value
                del self._entries[key]
            self._misses += 1
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future

        if not owner:
            logger.debug("rate_cache_join_inflight", extra={"key": key})
            return future.result()

        try:
            value = factory()
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(key, None)
            future.set_exception(exc)
            raise

        with self._lock:
            self._store(key, value, ttl_seconds)
            self._inflight.pop(key, None)
        future.set_result(value)
        return value

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def cleanup(self) -> int:
        """Remove expired entries; returns how many were removed."""
        with self._lock:
            expired = [k for k, e in self._entries.items() if self._expired(e)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("rate_cache_cleanup", extra={"removed": len(expired)})
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            expired = sum(1 for e in self._entries.values() if self._expired(e))
            return CacheStats(
                size=len(self._entries),
                max_entries=self._config.max_entries,
                active_count=len(self._entries) - expired,
                expired_count=expired,
                hits=self._hits,
                misses=self._misses,
            )

    def start_cleanup(self, interval_seconds: float | None = None) -> None:
        """Start the background sweep thread (no-op if already running)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        interval = interval_seconds or self._config.cleanup_interval_seconds
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            args=(interval,),
            name="rate-cache-cleanup",
            daemon=True,
        )
        self._sweeper.start()
        logger.info("rate_cache_cleanup_started", extra={"interval_seconds": interval})

    def stop_cleanup(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._sweeper is not None and self._sweeper.is_alive():
            self._sweeper.join(timeout=timeout)
        self._sweeper = None

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _sweep_loop(self, interval: float) -> None:
        while not self._stop_event.wait(timeout=interval):
            try:
                self.cleanup()
            except Exception:
                logger.exception("rate_cache_cleanup_failed")

    def _expired(self, entry: _Entry) -> bool:
        return self._clock.monotonic() >= entry.expires_at

    def _store(self, key: str, value: Any, ttl_seconds: float) -> None:
        # Caller holds the lock.
        if key not in self._entries and len(self._entries) >= self._config.max_entries:
            victim = min(self._entries, key=lambda k: self._entries[k].expires_at)
            del self._entries[victim]
            logger.debug("rate_cache_evicted", extra={"key": victim})
        self._entries[key] = _Entry(value, self._clock.monotonic() + ttl_seconds)
