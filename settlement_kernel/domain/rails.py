"""
Settlement rails and the fixed chart of accounts.

A rail is one settlement channel with its own clearing account: the card
processor, or one specific token on the Hedera network.  Clearing account
codes are fixed and distinct; reconciliation relies on that.
"""

from dataclasses import dataclass
from enum import Enum

from settlement_kernel.domain.assets import CryptoToken


class PaymentMethod(str, Enum):
    STRIPE = "STRIPE"
    HEDERA = "HEDERA"


class Rail(str, Enum):
    STRIPE = "stripe"
    HEDERA_HBAR = "hedera_hbar"
    HEDERA_USDC = "hedera_usdc"
    HEDERA_USDT = "hedera_usdt"
    HEDERA_AUDD = "hedera_audd"

    @property
    def token(self) -> CryptoToken | None:
        if self is Rail.STRIPE:
            return None
        return CryptoToken(self.value.split("_", 1)[1].upper())

    @property
    def payment_method(self) -> PaymentMethod:
        return PaymentMethod.STRIPE if self is Rail.STRIPE else PaymentMethod.HEDERA

    @property
    def label(self) -> str:
        """Upper-case label used in narration ("STRIPE", "HEDERA_USDC")."""
        return self.value.upper()

    @classmethod
    def for_token(cls, token: CryptoToken) -> "Rail":
        return cls(f"hedera_{token.value.lower()}")

    @classmethod
    def resolve(cls, method: PaymentMethod, token: CryptoToken | None) -> "Rail | None":
        """Map a confirmation's method + token to a rail (None if incomplete)."""
        if method is PaymentMethod.STRIPE:
            return cls.STRIPE
        if token is None:
            return None
        return cls.for_token(token)


class AccountType(str, Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"
    EQUITY = "EQUITY"

    @property
    def is_debit_normal(self) -> bool:
        return self in (AccountType.ASSET, AccountType.EXPENSE)


@dataclass(frozen=True)
class AccountDefinition:
    code: str
    name: str
    account_type: AccountType
    rail: Rail | None = None


CLEARING_ACCOUNT_CODES: dict[Rail, str] = {
    Rail.STRIPE: "1050",
    Rail.HEDERA_HBAR: "1051",
    Rail.HEDERA_USDC: "1052",
    Rail.HEDERA_USDT: "1053",
    Rail.HEDERA_AUDD: "1054",
}

ACCOUNTS_RECEIVABLE_CODE = "1200"
REVENUE_CODE = "4000"
PROCESSOR_FEE_CODE = "6100"

DEFAULT_CHART: tuple[AccountDefinition, ...] = (
    AccountDefinition("1050", "Stripe Clearing", AccountType.ASSET, Rail.STRIPE),
    AccountDefinition("1051", "Crypto Clearing - HBAR", AccountType.ASSET, Rail.HEDERA_HBAR),
    AccountDefinition("1052", "Crypto Clearing - USDC", AccountType.ASSET, Rail.HEDERA_USDC),
    AccountDefinition("1053", "Crypto Clearing - USDT", AccountType.ASSET, Rail.HEDERA_USDT),
    AccountDefinition("1054", "Crypto Clearing - AUDD", AccountType.ASSET, Rail.HEDERA_AUDD),
    AccountDefinition(ACCOUNTS_RECEIVABLE_CODE, "Accounts Receivable", AccountType.ASSET),
    AccountDefinition(REVENUE_CODE, "Revenue", AccountType.REVENUE),
    AccountDefinition(PROCESSOR_FEE_CODE, "Processor Fee Expense", AccountType.EXPENSE),
)


def clearing_account_code(rail: Rail) -> str:
    return CLEARING_ACCOUNT_CODES[rail]


def rail_for_clearing_code(code: str) -> Rail | None:
    for rail, rail_code in CLEARING_ACCOUNT_CODES.items():
        if rail_code == code:
            return rail
    return None
