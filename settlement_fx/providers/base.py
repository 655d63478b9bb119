"""
Rate provider interface.

Contract:
    ``fetch_rates(pairs)`` returns the rates it could price, keyed by pair.
    Pairs the upstream did not price are omitted rather than failing the
    whole request; whole-request failures raise RateProviderError.
    ``get_rate`` is the single-pair form and raises RATE_NOT_FOUND when the
    pair is missing from the response.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import httpx

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.rates import CurrencyPair, ExchangeRate
from settlement_kernel.exceptions import RateProviderError, UnsupportedPairError


class RateProvider(ABC):
    name: str = "base"

    def __init__(
        self,
        *,
        priority: int,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
        clock: Clock | None = None,
    ):
        self.priority = priority
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.Client | None = None
        self._clock = clock or SystemClock()

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def _get_json(self, path: str, params: dict | None = None) -> dict:
        try:
            response = self.client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise RateProviderError(self.name, "FETCH_ERROR", f"request failed: {exc}") from exc
        if response.status_code >= 400:
            raise RateProviderError(
                self.name,
                "API_ERROR",
                f"API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RateProviderError(self.name, "FETCH_ERROR", "malformed JSON response") from exc

    @abstractmethod
    def supports_pair(self, base: str, quote: str) -> bool:
        ...

    @abstractmethod
    def fetch_rates(self, pairs: Sequence[CurrencyPair]) -> dict[CurrencyPair, ExchangeRate]:
        ...

    def get_rate(self, base: str, quote: str) -> ExchangeRate:
        if not self.supports_pair(base, quote):
            raise UnsupportedPairError(self.name, base, quote)
        pair = CurrencyPair(base, quote)
        rates = self.fetch_rates([pair])
        if pair not in rates:
            raise RateProviderError(self.name, "RATE_NOT_FOUND", f"no rate for {pair}")
        return rates[pair]

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
