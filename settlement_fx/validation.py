"""Sanity checks applied to a rate before it is pinned to a payment."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from settlement_kernel.domain.assets import token_profile

MIN_REASONABLE_RATE = Decimal("0.000001")
MAX_REASONABLE_RATE = Decimal("1000000")
MAX_PEG_DEVIATION = Decimal("0.05")


@dataclass(frozen=True)
class RateValidation:
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = field(default=())

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_rate(base: str, quote: str, rate: Decimal) -> RateValidation:
    """
    Errors block the snapshot; warnings are logged and the snapshot is kept.

    A pegged token quoted in its own reference currency is expected at 1.0;
    more than 5% away from the peg is flagged.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if rate <= 0:
        errors.append(f"Rate must be positive, got {rate}")
        return RateValidation(tuple(errors), tuple(warnings))

    if rate < MIN_REASONABLE_RATE:
        warnings.append(f"Rate {rate} for {base}/{quote} is unusually small")
    if rate > MAX_REASONABLE_RATE:
        warnings.append(f"Rate {rate} for {base}/{quote} is unusually large")

    profile = token_profile(base)
    if profile is not None and profile.is_pegged and profile.peg_currency == quote:
        deviation = abs(rate - 1)
        if deviation > MAX_PEG_DEVIATION:
            warnings.append(
                f"{base}/{quote} deviates from its peg by {deviation:.4f} (rate {rate})"
            )

    return RateValidation(tuple(errors), tuple(warnings))
