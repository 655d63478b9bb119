"""
Module: settlement_sync.selectors.sync_selector
Responsibility: Sync status history, aggregate statistics and the failed
    sync listing.
Architecture position: Sync > Selectors.  Read-only.
"""

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import func, select

from settlement_kernel.selectors.base import BaseSelector

from settlement_sync.domain.types import SyncJobView, SyncStatistics, SyncStatus
from settlement_sync.models.sync_job import SyncJobModel

FAILED_LISTING_LIMIT = 50

_PERCENT = Decimal("0.01")


def _rate(part: int, total: int) -> Decimal:
    if total == 0:
        return Decimal("0.00")
    return (Decimal(part) * 100 / Decimal(total)).quantize(_PERCENT, rounding=ROUND_HALF_UP)


class SyncSelector(BaseSelector):
    def history_for_payment(self, payment_id: UUID) -> list[SyncJobView]:
        """Every sync job of the payment, most recently created first."""
        rows = self._session.execute(
            select(SyncJobModel)
            .where(SyncJobModel.payment_id == payment_id)
            .order_by(SyncJobModel.created_at.desc())
        ).scalars()
        return [row.to_dto() for row in rows]

    def statistics(self, organization_id: UUID | None = None) -> SyncStatistics:
        stmt = select(SyncJobModel.status, func.count()).group_by(SyncJobModel.status)
        if organization_id is not None:
            stmt = stmt.where(SyncJobModel.organization_id == organization_id)
        counts = {status: count for status, count in self._session.execute(stmt)}

        total = sum(counts.values())
        success = counts.get(SyncStatus.SUCCESS.value, 0)
        failed = counts.get(SyncStatus.FAILED.value, 0)
        return SyncStatistics(
            total=total,
            pending=counts.get(SyncStatus.PENDING.value, 0),
            retrying=counts.get(SyncStatus.RETRYING.value, 0),
            success=success,
            failed=failed,
            success_rate=_rate(success, total),
            failure_rate=_rate(failed, total),
        )

    def failed_jobs(
        self,
        organization_id: UUID | None = None,
        limit: int = FAILED_LISTING_LIMIT,
    ) -> list[SyncJobView]:
        """FAILED jobs, most recently updated first."""
        stmt = select(SyncJobModel).where(SyncJobModel.status == SyncStatus.FAILED.value)
        if organization_id is not None:
            stmt = stmt.where(SyncJobModel.organization_id == organization_id)
        stmt = stmt.order_by(SyncJobModel.updated_at.desc()).limit(limit)
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]
