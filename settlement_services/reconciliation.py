"""
ReconciliationReporter -- compares what each rail should hold with what the
ledger says it holds.

For every rail the expected amount is the sum of PAID payment amounts whose
latest confirmation resolves to that rail, and the ledger amount is the
balance of the rail's clearing account.  The report is reconciled when the
sum of absolute differences is below the configured tolerance.  An
unreconciled report, or any one-sided payment found on the way, is logged
as an integrity alert; the report itself is still returned.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.ledger import DEFAULT_BALANCE_TOLERANCE, ZERO
from settlement_kernel.domain.rails import Rail, clearing_account_code
from settlement_kernel.logging_config import get_logger
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.selectors.payment_selector import PaymentSelector

from settlement_services.alerts import log_reconciliation_mismatch, log_unbalanced_payment

logger = get_logger("services.reconciliation")


@dataclass(frozen=True)
class RailReconciliation:
    rail: Rail
    expected_revenue: Decimal
    ledger_balance: Decimal
    difference: Decimal
    payment_count: int


@dataclass(frozen=True)
class ReconciliationReport:
    organization_id: UUID
    generated_at: datetime
    rails: tuple[RailReconciliation, ...]
    total_difference: Decimal
    tolerance: Decimal
    unattributed_payment_count: int = 0

    @property
    def is_reconciled(self) -> bool:
        return self.total_difference < self.tolerance

    def for_rail(self, rail: Rail) -> RailReconciliation:
        for entry in self.rails:
            if entry.rail is rail:
                return entry
        raise KeyError(rail)


class ReconciliationReporter:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE,
    ):
        self._clock = clock or SystemClock()
        self._tolerance = tolerance
        self._payments = PaymentSelector(session)
        self._ledger = LedgerSelector(session)

    def build_report(self, organization_id: UUID) -> ReconciliationReport:
        expected: dict[Rail, Decimal] = {rail: ZERO for rail in Rail}
        counts: dict[Rail, int] = {rail: 0 for rail in Rail}
        unattributed = 0

        for settled in self._payments.settled_payments(organization_id):
            rail = settled.rail
            if rail is None:
                unattributed += 1
                continue
            expected[rail] += settled.payment.amount
            counts[rail] += 1

        rails = []
        for rail in Rail:
            ledger_balance = self._ledger.account_balance(
                organization_id, clearing_account_code(rail)
            )
            rails.append(
                RailReconciliation(
                    rail=rail,
                    expected_revenue=expected[rail],
                    ledger_balance=ledger_balance,
                    difference=expected[rail] - ledger_balance,
                    payment_count=counts[rail],
                )
            )

        report = ReconciliationReport(
            organization_id=organization_id,
            generated_at=self._clock.now(),
            rails=tuple(rails),
            total_difference=sum((abs(r.difference) for r in rails), ZERO),
            tolerance=self._tolerance,
            unattributed_payment_count=unattributed,
        )

        self._check_payment_balances(organization_id)
        if not report.is_reconciled:
            log_reconciliation_mismatch(
                organization_id=str(organization_id),
                total_difference=report.total_difference,
                tolerance=self._tolerance,
                rails={r.rail.value: str(r.difference) for r in rails if r.difference != 0},
            )

        logger.info(
            "reconciliation_report_built",
            extra={
                "organization_id": str(organization_id),
                "total_difference": str(report.total_difference),
                "is_reconciled": report.is_reconciled,
                "unattributed_payments": unattributed,
            },
        )
        return report

    def _check_payment_balances(self, organization_id: UUID) -> None:
        for unbalanced in self._ledger.find_unbalanced_payments(organization_id, self._tolerance):
            log_unbalanced_payment(
                organization_id=str(organization_id),
                payment_id=str(unbalanced.payment_id),
                total_debits=unbalanced.total_debits,
                total_credits=unbalanced.total_credits,
            )
