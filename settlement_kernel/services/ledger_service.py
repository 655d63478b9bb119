"""
Ledger service - append-only double-entry postings.

The Ledger is responsible for:
- Provisioning the fixed chart of accounts per organization
- Persisting balanced postings atomically (header + entries in one SAVEPOINT)
- Enforcing idempotency by posting key at the database level

The Ledger does NOT:
- Decide when a payment is posted (that's the sync orchestrator or the
  confirmation handler)
- Commit the session (the caller owns the transaction)
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.ledger import (
    EntryType,
    LedgerLine,
    check_balance,
)
from settlement_kernel.domain.rails import (
    ACCOUNTS_RECEIVABLE_CODE,
    DEFAULT_CHART,
    Rail,
    clearing_account_code,
)
from settlement_kernel.exceptions import (
    LedgerAccountNotFoundError,
    UnbalancedPostingError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.ledger import LedgerAccount, LedgerEntry, LedgerPosting

logger = get_logger("services.ledger")


def settlement_posting_key(payment_id: UUID) -> str:
    """Idempotency key of the one settlement posting a payment may have."""
    return f"settlement:{payment_id}"


@dataclass(frozen=True)
class PostingResult:
    posting_id: UUID
    idempotency_key: str
    created: bool


class LedgerService:
    """
    Contract:
        ``post_balanced`` either writes the header and all of its entries or
        nothing.  A second call with the same idempotency key returns the
        first posting with ``created=False``, including when the duplicate
        arrives concurrently and loses the unique-constraint race.

    Non-goals:
        - No reversals or edits; corrections are new postings.
        - No multi-currency postings; every line shares one currency.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Chart of accounts
    # -------------------------------------------------------------------------

    def ensure_default_accounts(self, organization_id: UUID) -> list[LedgerAccount]:
        """Create any missing default accounts for the organization."""
        existing = {
            account.code: account
            for account in self._session.execute(
                select(LedgerAccount).where(LedgerAccount.organization_id == organization_id)
            ).scalars()
        }
        created = 0
        for definition in DEFAULT_CHART:
            if definition.code in existing:
                continue
            account = LedgerAccount(
                organization_id=organization_id,
                code=definition.code,
                name=definition.name,
                account_type=definition.account_type.value,
                rail=definition.rail.value if definition.rail else None,
            )
            self._session.add(account)
            existing[definition.code] = account
            created += 1

        if created:
            self._session.flush()
            logger.info(
                "ledger_accounts_provisioned",
                extra={"organization_id": str(organization_id), "accounts_created": created},
            )
        return [existing[d.code] for d in DEFAULT_CHART]

    # -------------------------------------------------------------------------
    # Postings
    # -------------------------------------------------------------------------

    def post_balanced(
        self,
        *,
        organization_id: UUID,
        idempotency_key: str,
        lines: Sequence[LedgerLine],
        payment_id: UUID | None = None,
        description: str | None = None,
    ) -> PostingResult:
        """
        Persist a balanced set of lines as one posting.

        Raises:
            UnbalancedPostingError: debits != credits, fewer than two lines,
                or lines in more than one currency.
            LedgerAccountNotFoundError: a line names an unknown account code.
        """
        self._validate_lines(lines)

        existing = self._find_posting(idempotency_key)
        if existing is not None:
            logger.info(
                "ledger_posting_replayed",
                extra={"idempotency_key": idempotency_key, "posting_id": str(existing.id)},
            )
            return PostingResult(existing.id, idempotency_key, created=False)

        self._require_accounts(organization_id, {line.account_code for line in lines})

        now = self._clock.now()
        posting = LedgerPosting(
            id=uuid4(),
            organization_id=organization_id,
            payment_id=payment_id,
            idempotency_key=idempotency_key,
            description=description,
            posted_at=now,
        )

        savepoint = self._session.begin_nested()
        try:
            self._session.add(posting)
            for line in lines:
                self._session.add(
                    LedgerEntry(
                        posting=posting,
                        organization_id=organization_id,
                        payment_id=payment_id,
                        account_code=line.account_code,
                        entry_type=line.entry_type.value,
                        amount=line.amount,
                        currency=line.currency,
                        description=description,
                        created_at=now,
                    )
                )
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            winner = self._find_posting(idempotency_key)
            if winner is None:
                raise
            logger.info(
                "ledger_posting_race_lost",
                extra={"idempotency_key": idempotency_key, "posting_id": str(winner.id)},
            )
            return PostingResult(winner.id, idempotency_key, created=False)

        logger.info(
            "ledger_posting_created",
            extra={
                "idempotency_key": idempotency_key,
                "posting_id": str(posting.id),
                "payment_id": str(payment_id) if payment_id else None,
                "line_count": len(lines),
            },
        )
        return PostingResult(posting.id, idempotency_key, created=True)

    def post_settlement(
        self,
        *,
        organization_id: UUID,
        payment_id: UUID,
        rail: Rail,
        amount: Decimal,
        currency: str,
        description: str | None = None,
    ) -> PostingResult:
        """
        Record receipt of a payment on its rail.

        DR the rail's clearing account, CR Accounts Receivable, for the
        invoice amount in the invoice currency.
        """
        self.ensure_default_accounts(organization_id)
        lines = (
            LedgerLine(clearing_account_code(rail), EntryType.DEBIT, amount, currency),
            LedgerLine(ACCOUNTS_RECEIVABLE_CODE, EntryType.CREDIT, amount, currency),
        )
        return self.post_balanced(
            organization_id=organization_id,
            idempotency_key=settlement_posting_key(payment_id),
            lines=lines,
            payment_id=payment_id,
            description=description or f"Settlement via {rail.label}",
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _validate_lines(self, lines: Sequence[LedgerLine]) -> None:
        currencies = {line.currency for line in lines}
        check = check_balance((line.entry_type, line.amount) for line in lines)
        currency = next(iter(currencies)) if currencies else ""
        if len(lines) < 2 or len(currencies) != 1 or check.difference != 0:
            raise UnbalancedPostingError(check.total_debits, check.total_credits, currency)

    def _find_posting(self, idempotency_key: str) -> LedgerPosting | None:
        return self._session.execute(
            select(LedgerPosting).where(LedgerPosting.idempotency_key == idempotency_key)
        ).scalar_one_or_none()

    def _require_accounts(self, organization_id: UUID, codes: set[str]) -> None:
        known = set(
            self._session.execute(
                select(LedgerAccount.code).where(
                    LedgerAccount.organization_id == organization_id,
                    LedgerAccount.code.in_(codes),
                )
            ).scalars()
        )
        missing = sorted(codes - known)
        if missing:
            raise LedgerAccountNotFoundError(str(organization_id), missing[0])
