"""
Module: settlement_kernel.selectors.ledger_selector
Responsibility: Ledger reads -- account balances, per-payment and
    per-organization debit/credit checks, unbalanced-payment detection.
    Balances are never stored; every figure is folded from LedgerEntry rows
    with ``settlement_kernel.domain.ledger.compute_balance``.
Architecture position: Kernel > Selectors.

Failure modes:
    - Unknown accounts with no entries report a zero balance rather than
      raising, so zero-activity rails reconcile cleanly.
"""

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.ledger import (
    DEFAULT_BALANCE_TOLERANCE,
    BalanceCheck,
    EntryType,
    check_balance,
    compute_balance,
)
from settlement_kernel.domain.rails import (
    DEFAULT_CHART,
    AccountType,
    Rail,
    rail_for_clearing_code,
)
from settlement_kernel.models.ledger import LedgerAccount, LedgerEntry
from settlement_kernel.selectors.base import BaseSelector

_DEFAULT_TYPES = {d.code: d.account_type for d in DEFAULT_CHART}
_DEFAULT_NAMES = {d.code: d.name for d in DEFAULT_CHART}


@dataclass(frozen=True)
class AccountBalance:
    code: str
    name: str
    account_type: AccountType
    rail: Rail | None
    total_debits: Decimal
    total_credits: Decimal
    balance: Decimal
    entry_count: int


@dataclass(frozen=True)
class UnbalancedPayment:
    payment_id: UUID
    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal


class LedgerSelector(BaseSelector):
    """Read-side access to ledger accounts and entries."""

    def _entries(self, organization_id: UUID, account_code: str | None = None):
        stmt = select(LedgerEntry.account_code, LedgerEntry.entry_type, LedgerEntry.amount).where(
            LedgerEntry.organization_id == organization_id
        )
        if account_code is not None:
            stmt = stmt.where(LedgerEntry.account_code == account_code)
        return self._session.execute(stmt).all()

    def _accounts(self, organization_id: UUID) -> dict[str, LedgerAccount]:
        return {
            account.code: account
            for account in self._session.execute(
                select(LedgerAccount).where(LedgerAccount.organization_id == organization_id)
            ).scalars()
        }

    def account_type(self, organization_id: UUID, code: str) -> AccountType:
        account = self._session.execute(
            select(LedgerAccount).where(
                LedgerAccount.organization_id == organization_id,
                LedgerAccount.code == code,
            )
        ).scalar_one_or_none()
        if account is not None:
            return account.type
        return _DEFAULT_TYPES.get(code, AccountType.ASSET)

    def account_balance(self, organization_id: UUID, code: str) -> Decimal:
        """Signed balance of one account per its type's sign convention."""
        rows = self._entries(organization_id, code)
        return compute_balance(
            self.account_type(organization_id, code),
            ((EntryType(row.entry_type), row.amount) for row in rows),
        )

    def account_balances(self, organization_id: UUID) -> list[AccountBalance]:
        """Balances for every account in the chart, ordered by code."""
        accounts = self._accounts(organization_id)
        grouped: dict[str, list[tuple[EntryType, Decimal]]] = defaultdict(list)
        for row in self._entries(organization_id):
            grouped[row.account_code].append((EntryType(row.entry_type), row.amount))

        codes = sorted(set(accounts) | set(grouped) | set(_DEFAULT_TYPES))
        result = []
        for code in codes:
            account = accounts.get(code)
            account_type = account.type if account else _DEFAULT_TYPES.get(code, AccountType.ASSET)
            entries = grouped.get(code, [])
            check = check_balance(entries)
            result.append(
                AccountBalance(
                    code=code,
                    name=account.name if account else _DEFAULT_NAMES.get(code, code),
                    account_type=account_type,
                    rail=Rail(account.rail) if account and account.rail else rail_for_clearing_code(code),
                    total_debits=check.total_debits,
                    total_credits=check.total_credits,
                    balance=compute_balance(account_type, entries),
                    entry_count=len(entries),
                )
            )
        return result

    def check_payment_balance(
        self,
        payment_id: UUID,
        tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE,
    ) -> BalanceCheck:
        rows = self._session.execute(
            select(LedgerEntry.entry_type, LedgerEntry.amount).where(
                LedgerEntry.payment_id == payment_id
            )
        ).all()
        return check_balance(((EntryType(r.entry_type), r.amount) for r in rows), tolerance)

    def check_ledger_balance(
        self,
        organization_id: UUID,
        tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE,
    ) -> BalanceCheck:
        rows = self._entries(organization_id)
        return check_balance(((EntryType(r.entry_type), r.amount) for r in rows), tolerance)

    def find_unbalanced_payments(
        self,
        organization_id: UUID,
        tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE,
    ) -> list[UnbalancedPayment]:
        rows = self._session.execute(
            select(LedgerEntry.payment_id, LedgerEntry.entry_type, LedgerEntry.amount).where(
                LedgerEntry.organization_id == organization_id,
                LedgerEntry.payment_id.is_not(None),
            )
        ).all()
        by_payment: dict[UUID, list[tuple[EntryType, Decimal]]] = defaultdict(list)
        for row in rows:
            by_payment[row.payment_id].append((EntryType(row.entry_type), row.amount))

        unbalanced = []
        for payment_id, entries in by_payment.items():
            check = check_balance(entries, tolerance)
            if not check.is_balanced:
                unbalanced.append(
                    UnbalancedPayment(
                        payment_id=payment_id,
                        total_debits=check.total_debits,
                        total_credits=check.total_credits,
                        difference=check.difference,
                    )
                )
        return sorted(unbalanced, key=lambda u: str(u.payment_id))

