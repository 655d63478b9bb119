"""Per-organization accounting configuration supplied by the merchant."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase, UUIDString
from settlement_kernel.domain.rails import Rail


class MerchantSettings(TrackedBase):
    """
    Account mappings into the external accounting system.

    ``clearing_accounts`` maps rail codes ("stripe", "hedera_usdc", ...) to the
    external system's account identifier.  Organizations without an
    accounting integration leave ``accounting_enabled`` false and are posted
    to the ledger at confirmation time instead of through the sync queue.
    """

    __tablename__ = "merchant_settings"

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    default_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    clearing_accounts: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    revenue_account_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    accounting_enabled: Mapped[bool] = mapped_column(default=True, nullable=False)

    def clearing_account_for(self, rail: Rail) -> str | None:
        value = (self.clearing_accounts or {}).get(rail.value)
        return value or None
