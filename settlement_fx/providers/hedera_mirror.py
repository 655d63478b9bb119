"""
Hedera mirror node rate provider (fallback).

The mirror node only publishes the network's HBAR/USD consensus rate.
Stablecoin pairs are answered from their 1:1 peg and AUD crosses from a
configured USD/AUD rate, so this provider keeps checkout working when the
primary price API is down, at the cost of a static cross rate.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from settlement_kernel.domain.rates import CurrencyPair, ExchangeRate, to_rate_decimal
from settlement_kernel.exceptions import RateProviderError, UnsupportedPairError
from settlement_kernel.logging_config import get_logger

from settlement_fx.providers.base import RateProvider

logger = get_logger("fx.hedera_mirror")

MAINNET_URL = "https://mainnet-public.mirrornode.hedera.com"
TESTNET_URL = "https://testnet.mirrornode.hedera.com"

SUPPORTED_PAIRS: frozenset[tuple[str, str]] = frozenset(
    {
        ("HBAR", "USD"),
        ("USDC", "USD"),
        ("USDT", "USD"),
        ("AUDD", "AUD"),
        ("AUDD", "USD"),
        ("HBAR", "AUD"),
        ("USDC", "AUD"),
        ("USDT", "AUD"),
    }
)

ONE = Decimal("1")


class HederaMirrorProvider(RateProvider):
    name = "hedera_mirror"

    def __init__(
        self,
        *,
        usd_aud_rate: Decimal | str = "1.52",
        base_url: str | None = None,
        **kwargs,
    ):
        self.usd_aud_rate = to_rate_decimal(usd_aud_rate)
        super().__init__(base_url=base_url or MAINNET_URL, **kwargs)

    def supports_pair(self, base: str, quote: str) -> bool:
        return (base, quote) in SUPPORTED_PAIRS

    def fetch_hbar_usd_rate(self) -> Decimal:
        data = self._get_json("/api/v1/network/exchangerate")
        try:
            current = data["current_rate"]
            cents = Decimal(str(current["cent_equivalent"]))
            hbars = Decimal(str(current["hbar_equivalent"]))
        except (KeyError, TypeError) as exc:
            raise RateProviderError(self.name, "FETCH_ERROR", "unexpected exchangerate payload") from exc
        if hbars == 0:
            raise RateProviderError(self.name, "FETCH_ERROR", "hbar_equivalent is zero")
        # cents per HBAR -> USD per HBAR
        return cents / hbars / 100

    def fetch_rates(self, pairs: Sequence[CurrencyPair]) -> dict[CurrencyPair, ExchangeRate]:
        for pair in pairs:
            if not self.supports_pair(pair.base, pair.quote):
                raise UnsupportedPairError(self.name, pair.base, pair.quote)

        hbar_usd = None
        if any(p.base == "HBAR" for p in pairs):
            hbar_usd = self.fetch_hbar_usd_rate()

        observed_at = self._clock.now()
        rates: dict[CurrencyPair, ExchangeRate] = {}
        for pair in pairs:
            rate, source = self._derive(pair, hbar_usd)
            rates[pair] = ExchangeRate(
                base=pair.base,
                quote=pair.quote,
                rate=rate,
                provider=self.name,
                observed_at=observed_at,
                metadata={"source": source},
            )
        logger.info("hedera_mirror_rates_fetched", extra={"count": len(rates)})
        return rates

    def _derive(self, pair: CurrencyPair, hbar_usd: Decimal | None) -> tuple[Decimal, str]:
        key = (pair.base, pair.quote)
        if key == ("HBAR", "USD"):
            return hbar_usd, "hedera_network_consensus"
        if key == ("HBAR", "AUD"):
            return hbar_usd * self.usd_aud_rate, "calculated"
        if key in (("USDC", "USD"), ("USDT", "USD"), ("AUDD", "AUD")):
            return ONE, "static_peg"
        if key == ("AUDD", "USD"):
            return ONE / self.usd_aud_rate, "calculated"
        # USDC/AUD, USDT/AUD
        return self.usd_aud_rate, "calculated"
