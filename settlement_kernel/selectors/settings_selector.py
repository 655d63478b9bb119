"""
Module: settlement_kernel.selectors.settings_selector
Responsibility: Merchant settings and settlement-snapshot lookups used when
    a confirmed payment is turned into accounting records.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.assets import CryptoToken
from settlement_kernel.models.fx_snapshot import FxSnapshot, SnapshotType
from settlement_kernel.models.merchant_settings import MerchantSettings
from settlement_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class SnapshotRate:
    base_currency: str
    quote_currency: str
    rate: Decimal
    provider: str
    captured_at: datetime


class SettingsSelector(BaseSelector):
    def get_settings_model(self, organization_id: UUID) -> MerchantSettings | None:
        return self._session.execute(
            select(MerchantSettings).where(MerchantSettings.organization_id == organization_id)
        ).scalar_one_or_none()

    def accounting_enabled(self, organization_id: UUID) -> bool:
        """Organizations without settings have no accounting integration."""
        settings = self.get_settings_model(organization_id)
        return settings is not None and settings.accounting_enabled

    def snapshot_rate(
        self,
        payment_id: UUID,
        snapshot_type: SnapshotType,
        token: CryptoToken | None,
    ) -> SnapshotRate | None:
        row = self._session.execute(
            select(FxSnapshot).where(
                FxSnapshot.payment_id == payment_id,
                FxSnapshot.snapshot_type == snapshot_type.value,
                FxSnapshot.token_key == (token.value if token else ""),
            )
        ).scalar_one_or_none()
        if row is None:
            return None
        return SnapshotRate(
            base_currency=row.base_currency,
            quote_currency=row.quote_currency,
            rate=row.rate,
            provider=row.provider,
            captured_at=row.captured_at,
        )
