"""
CoinGecko rate provider (primary).

Prices every supported token against every supported fiat currency through
``/simple/price``.  One request covers a whole batch: all requested tokens as
``ids`` and all requested quotes as ``vs_currencies``.
"""

from __future__ import annotations

from collections.abc import Sequence

from settlement_kernel.domain.assets import FIAT_CURRENCIES, CryptoToken
from settlement_kernel.domain.rates import CurrencyPair, ExchangeRate, to_rate_decimal
from settlement_kernel.exceptions import UnsupportedPairError
from settlement_kernel.logging_config import get_logger

from settlement_fx.providers.base import RateProvider

logger = get_logger("fx.coingecko")

COINGECKO_IDS: dict[str, str] = {
    CryptoToken.HBAR.value: "hedera-hashgraph",
    CryptoToken.USDC.value: "usd-coin",
    CryptoToken.USDT.value: "tether",
    CryptoToken.AUDD.value: "australian-digital-dollar",
}

PUBLIC_BASE_URL = "https://api.coingecko.com/api/v3"
PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"


class CoinGeckoProvider(RateProvider):
    name = "coingecko"

    def __init__(self, *, api_key: str | None = None, base_url: str | None = None, **kwargs):
        self.api_key = api_key
        default_url = PRO_BASE_URL if api_key else PUBLIC_BASE_URL
        super().__init__(base_url=base_url or default_url, **kwargs)

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        if self.api_key:
            headers["x-cg-pro-api-key"] = self.api_key
        return headers

    def supports_pair(self, base: str, quote: str) -> bool:
        return base in COINGECKO_IDS and quote in FIAT_CURRENCIES

    def fetch_rates(self, pairs: Sequence[CurrencyPair]) -> dict[CurrencyPair, ExchangeRate]:
        for pair in pairs:
            if not self.supports_pair(pair.base, pair.quote):
                raise UnsupportedPairError(self.name, pair.base, pair.quote)
        if not pairs:
            return {}

        ids = sorted({COINGECKO_IDS[p.base] for p in pairs})
        quotes = sorted({p.quote.lower() for p in pairs})
        data = self._get_json(
            "/simple/price",
            params={"ids": ",".join(ids), "vs_currencies": ",".join(quotes), "precision": "8"},
        )

        observed_at = self._clock.now()
        rates: dict[CurrencyPair, ExchangeRate] = {}
        for pair in pairs:
            coin_id = COINGECKO_IDS[pair.base]
            value = (data.get(coin_id) or {}).get(pair.quote.lower())
            if value is None:
                logger.warning(
                    "coingecko_rate_missing",
                    extra={"pair": str(pair), "coin_id": coin_id},
                )
                continue
            rates[pair] = ExchangeRate(
                base=pair.base,
                quote=pair.quote,
                rate=to_rate_decimal(value),
                provider=self.name,
                observed_at=observed_at,
                metadata={"coin_id": coin_id},
            )

        logger.debug("coingecko_rates_fetched", extra={"requested": len(pairs), "priced": len(rates)})
        return rates
