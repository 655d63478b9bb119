"""Exchange-rate value types shared by providers, cache and snapshots."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class CurrencyPair:
    base: str
    quote: str

    def __str__(self) -> str:
        return f"{self.base}/{self.quote}"


@dataclass(frozen=True)
class ExchangeRate:
    """
    One observed price: 1 ``base`` = ``rate`` ``quote``.

    Immutable once created.  Expiry is tracked by the cache entry holding the
    rate, never on the rate itself.
    """

    base: str
    quote: str
    rate: Decimal
    provider: str
    observed_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def pair(self) -> CurrencyPair:
        return CurrencyPair(self.base, self.quote)


def to_rate_decimal(value: Any) -> Decimal:
    """Convert a provider-supplied number to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
