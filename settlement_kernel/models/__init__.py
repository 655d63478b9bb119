"""ORM models owned by the settlement kernel."""

from settlement_kernel.models.fx_snapshot import FxSnapshot, SnapshotType
from settlement_kernel.models.ledger import LedgerAccount, LedgerEntry, LedgerPosting
from settlement_kernel.models.merchant_settings import MerchantSettings
from settlement_kernel.models.payment import Payment, PaymentEvent

__all__ = [
    "FxSnapshot",
    "LedgerAccount",
    "LedgerEntry",
    "LedgerPosting",
    "MerchantSettings",
    "Payment",
    "PaymentEvent",
    "SnapshotType",
]
