"""
Dashboard reads: revenue by rail, revenue over time, CSV export and
current ledger balances.

Revenue is recognized per rail from each PAID payment's latest
confirmation and dated by when the payment was paid (its creation time when
no paid time is recorded).  The CSV export lists payments of every status
by creation date.
"""

from __future__ import annotations

import csv
import io
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.ledger import ZERO, format_amount
from settlement_kernel.domain.payments import PaymentStatus, token_from_metadata
from settlement_kernel.domain.rails import Rail
from settlement_kernel.selectors.ledger_selector import AccountBalance, LedgerSelector
from settlement_kernel.selectors.payment_selector import (
    ConfirmationView,
    PaymentSelector,
    SettledPayment,
)

CSV_HEADERS = (
    "Date",
    "Short Code",
    "Status",
    "Amount",
    "Currency",
    "Payment Method",
    "Token Type",
    "Description",
    "Invoice Reference",
    "Customer Email",
)

DEFAULT_SERIES_DAYS = 30

_PERCENT = Decimal("0.01")


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class RailRevenue:
    rail: Rail
    revenue: Decimal
    count: int
    percentage: Decimal


@dataclass(frozen=True)
class RevenueSummary:
    total_revenue: Decimal
    payment_count: int
    by_rail: tuple[RailRevenue, ...]

    def for_rail(self, rail: Rail) -> RailRevenue:
        return next(r for r in self.by_rail if r.rail is rail)


@dataclass(frozen=True)
class TimeSeriesPoint:
    period: str
    revenue: Decimal
    count: int
    by_rail: dict[Rail, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerBalances:
    clearing_accounts: dict[Rail, AccountBalance]
    other_accounts: tuple[AccountBalance, ...]
    all_accounts: tuple[AccountBalance, ...]


def period_key(moment: datetime, granularity: Granularity) -> str:
    """Bucket label: ``YYYY-MM-DD``, ISO week ``YYYY-Www`` or ``YYYY-MM``."""
    if granularity is Granularity.DAY:
        return moment.strftime("%Y-%m-%d")
    if granularity is Granularity.WEEK:
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    return moment.strftime("%Y-%m")


def _percentage(part: Decimal, total: Decimal) -> Decimal:
    if total == 0:
        return Decimal("0.00")
    return (part * 100 / total).quantize(_PERCENT, rounding=ROUND_HALF_UP)


def _revenue_date(settled: SettledPayment) -> datetime:
    return settled.payment.paid_at or settled.payment.created_at


def _method_and_token(event: ConfirmationView | None) -> tuple[str, str]:
    if event is None or not event.payment_method:
        return "N/A", "N/A"
    if event.payment_method == "STRIPE":
        return "STRIPE", "STRIPE"
    token = token_from_metadata(event.metadata)
    return event.payment_method, token.value if token else "N/A"


class ReportingService:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._payments = PaymentSelector(session)
        self._ledger = LedgerSelector(session)

    def _settled_in_range(
        self,
        organization_id: UUID,
        start: datetime | None,
        end: datetime | None,
    ) -> list[SettledPayment]:
        result = []
        for settled in self._payments.settled_payments(organization_id):
            if settled.rail is None:
                continue
            moment = _revenue_date(settled)
            if start is not None and moment < start:
                continue
            if end is not None and moment > end:
                continue
            result.append(settled)
        return result

    # -------------------------------------------------------------------------
    # Revenue
    # -------------------------------------------------------------------------

    def revenue_summary(
        self,
        organization_id: UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> RevenueSummary:
        revenue: dict[Rail, Decimal] = {rail: ZERO for rail in Rail}
        counts: dict[Rail, int] = {rail: 0 for rail in Rail}
        for settled in self._settled_in_range(organization_id, start, end):
            revenue[settled.rail] += settled.payment.amount
            counts[settled.rail] += 1

        total = sum(revenue.values(), ZERO)
        return RevenueSummary(
            total_revenue=total,
            payment_count=sum(counts.values()),
            by_rail=tuple(
                RailRevenue(
                    rail=rail,
                    revenue=revenue[rail],
                    count=counts[rail],
                    percentage=_percentage(revenue[rail], total),
                )
                for rail in Rail
            ),
        )

    def time_series(
        self,
        organization_id: UUID,
        granularity: Granularity | str = Granularity.DAY,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TimeSeriesPoint]:
        """Revenue per period, oldest first.  Defaults to the last 30 days."""
        granularity = Granularity(granularity)
        if start is None and end is None:
            end = self._clock.now()
            start = end - timedelta(days=DEFAULT_SERIES_DAYS)

        buckets: dict[str, dict[Rail, Decimal]] = defaultdict(dict)
        counts: dict[str, int] = defaultdict(int)
        for settled in self._settled_in_range(organization_id, start, end):
            key = period_key(_revenue_date(settled), granularity)
            by_rail = buckets[key]
            by_rail[settled.rail] = by_rail.get(settled.rail, ZERO) + settled.payment.amount
            counts[key] += 1

        return [
            TimeSeriesPoint(
                period=key,
                revenue=sum(buckets[key].values(), ZERO),
                count=counts[key],
                by_rail=dict(buckets[key]),
            )
            for key in sorted(buckets)
        ]

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def export_csv(
        self,
        organization_id: UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        status: PaymentStatus | None = None,
    ) -> str:
        """Payments as CSV, newest first.  Data cells are always quoted."""
        payments = self._payments.list_payments(
            organization_id, status=status, start=start, end=end
        )
        confirmations = self._payments.latest_confirmations([p.payment_id for p in payments])
        buffer = io.StringIO()
        buffer.write(",".join(CSV_HEADERS) + "\n")
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        for payment in payments:
            method, token = _method_and_token(confirmations.get(payment.payment_id))
            writer.writerow(
                [
                    payment.created_at.strftime("%Y-%m-%d"),
                    payment.short_code,
                    payment.status.value,
                    format_amount(payment.amount),
                    payment.currency,
                    method,
                    token,
                    payment.description or "",
                    payment.invoice_reference or "",
                    payment.customer_email or "",
                ]
            )
        return buffer.getvalue()

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    def ledger_balances(self, organization_id: UUID) -> LedgerBalances:
        balances = self._ledger.account_balances(organization_id)
        clearing = {b.rail: b for b in balances if b.rail is not None}
        return LedgerBalances(
            clearing_accounts=clearing,
            other_accounts=tuple(b for b in balances if b.rail is None),
            all_accounts=tuple(balances),
        )
