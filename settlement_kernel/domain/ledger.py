"""
Pure ledger arithmetic.

Responsibility:
    Sign conventions and balance folding for the double-entry ledger.  Every
    function here is a pure function of its inputs so reporting can recompute
    balances as often as it likes.

Invariants enforced:
    - ASSET / EXPENSE: DEBIT increases, CREDIT decreases.
    - LIABILITY / REVENUE / EQUITY: CREDIT increases, DEBIT decreases.
    - A posting is balanced when |debits - credits| < tolerance.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable

from settlement_kernel.domain.rails import AccountType

ZERO = Decimal("0")
DEFAULT_BALANCE_TOLERANCE = Decimal("0.01")


class EntryType(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


@dataclass(frozen=True)
class LedgerLine:
    """One side of a posting before it is persisted."""

    account_code: str
    entry_type: EntryType
    amount: Decimal
    currency: str

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise TypeError(f"amount must be Decimal, got {type(self.amount).__name__}")
        if self.amount < ZERO:
            raise ValueError(f"Ledger amounts are non-negative, got {self.amount}")


@dataclass(frozen=True)
class BalanceCheck:
    """Outcome of a debit/credit comparison for a payment or organization."""

    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal
    is_balanced: bool


def signed_amount(account_type: AccountType, entry_type: EntryType, amount: Decimal) -> Decimal:
    """Contribution of one entry to the balance of an account of this type."""
    if account_type.is_debit_normal:
        return amount if entry_type is EntryType.DEBIT else -amount
    return amount if entry_type is EntryType.CREDIT else -amount


def compute_balance(
    account_type: AccountType,
    entries: Iterable[tuple[EntryType, Decimal]],
) -> Decimal:
    """Fold (entry_type, amount) pairs into an account balance."""
    balance = ZERO
    for entry_type, amount in entries:
        balance += signed_amount(account_type, entry_type, amount)
    return balance


def check_balance(
    entries: Iterable[tuple[EntryType, Decimal]],
    tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE,
) -> BalanceCheck:
    debits = ZERO
    credits = ZERO
    for entry_type, amount in entries:
        if entry_type is EntryType.DEBIT:
            debits += amount
        else:
            credits += amount
    difference = debits - credits
    return BalanceCheck(
        total_debits=debits,
        total_credits=credits,
        difference=difference,
        is_balanced=abs(difference) < tolerance,
    )


_CENTS = Decimal("0.01")


def format_amount(value: Decimal) -> str:
    """Plain decimal text, trailing zeros trimmed but never below two places."""
    normalized = value.normalize()
    if normalized.as_tuple().exponent > -2:
        return format(value.quantize(_CENTS), "f")
    return format(normalized, "f")
