"""
Ledger models -- chart of accounts, postings and their entries.

Contract:
    A LedgerPosting is the atomic unit of the ledger: a header carrying the
    idempotency key plus two or more LedgerEntry rows whose debits equal
    their credits.  LedgerService writes the header and every entry inside
    one SAVEPOINT, so a one-sided posting can never be observed.

Invariants enforced:
    - UNIQUE (organization_id, code) on LedgerAccount.
    - UNIQUE idempotency_key on LedgerPosting: a payment settles once.
    - LedgerPosting and LedgerEntry are append-only (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from settlement_kernel.domain.ledger import EntryType
from settlement_kernel.domain.rails import AccountType


class LedgerAccount(TrackedBase):
    __tablename__ = "ledger_accounts"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_ledger_accounts_org_code"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_type: Mapped[str] = mapped_column(String(20), nullable=False)
    rail: Mapped[str | None] = mapped_column(String(20), nullable=True)

    @property
    def type(self) -> AccountType:
        return AccountType(self.account_type)

    @property
    def is_clearing(self) -> bool:
        return self.rail is not None

    def __repr__(self) -> str:
        return f"<LedgerAccount {self.code} {self.name} ({self.account_type})>"


class LedgerPosting(Base):
    __tablename__ = "ledger_postings"

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    payment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True, index=True)
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    posted_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    entries: Mapped[list["LedgerEntry"]] = relationship(
        "LedgerEntry",
        back_populates="posting",
    )


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    __table_args__ = (
        Index("ix_ledger_entries_org_account", "organization_id", "account_code"),
        Index("ix_ledger_entries_payment", "payment_id"),
    )

    posting_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_postings.id"),
        nullable=False,
    )
    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    payment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    account_code: Mapped[str] = mapped_column(String(20), nullable=False)
    entry_type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    posting: Mapped[LedgerPosting] = relationship("LedgerPosting", back_populates="entries")

    @property
    def side(self) -> EntryType:
        return EntryType(self.entry_type)
