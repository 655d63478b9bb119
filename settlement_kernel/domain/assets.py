"""
Supported currencies and crypto tokens.

The four settlement tokens fall into two volatility classes: the native
network token moves freely, the three stablecoins track a fiat currency 1:1.
Cache TTLs, snapshot validation and the "currency matched" narration marker
all key off this classification.
"""

from dataclasses import dataclass
from enum import Enum


class CryptoToken(str, Enum):
    HBAR = "HBAR"
    USDC = "USDC"
    USDT = "USDT"
    AUDD = "AUDD"


class VolatilityClass(str, Enum):
    VOLATILE = "volatile"
    PEGGED = "pegged"


@dataclass(frozen=True)
class TokenProfile:
    token: CryptoToken
    volatility: VolatilityClass
    decimals: int
    peg_currency: str | None = None

    @property
    def is_pegged(self) -> bool:
        return self.volatility is VolatilityClass.PEGGED


TOKEN_PROFILES: dict[CryptoToken, TokenProfile] = {
    CryptoToken.HBAR: TokenProfile(CryptoToken.HBAR, VolatilityClass.VOLATILE, 8),
    CryptoToken.USDC: TokenProfile(CryptoToken.USDC, VolatilityClass.PEGGED, 6, "USD"),
    CryptoToken.USDT: TokenProfile(CryptoToken.USDT, VolatilityClass.PEGGED, 6, "USD"),
    CryptoToken.AUDD: TokenProfile(CryptoToken.AUDD, VolatilityClass.PEGGED, 6, "AUD"),
}

FIAT_CURRENCIES: frozenset[str] = frozenset(
    {"USD", "AUD", "EUR", "GBP", "CAD", "NZD", "SGD"}
)

# Quote currencies the rate cache is prewarmed for.
PREWARM_QUOTES: tuple[str, ...] = ("USD", "AUD")


def parse_token(value: str | CryptoToken | None) -> CryptoToken | None:
    """Normalize a token symbol; unknown or empty values return None."""
    if value is None or isinstance(value, CryptoToken):
        return value
    try:
        return CryptoToken(value.strip().upper())
    except ValueError:
        return None


def token_profile(value: str | CryptoToken) -> TokenProfile | None:
    token = parse_token(value)
    if token is None:
        return None
    return TOKEN_PROFILES[token]


def is_currency_matched(token: CryptoToken | None, invoice_currency: str) -> bool:
    """True when a pegged token settles an invoice in its own reference currency."""
    if token is None:
        return False
    profile = TOKEN_PROFILES[token]
    return profile.is_pegged and profile.peg_currency == invoice_currency
