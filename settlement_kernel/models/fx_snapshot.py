"""
FxSnapshot -- immutable rate observation tied to one payment.

Invariants enforced:
    - UNIQUE (payment_id, snapshot_type, token_key): one snapshot per payment,
      lifecycle point and token.  ``token_key`` is the token symbol or the
      empty string for pure-fiat snapshots, so the constraint also covers
      them (NULLs never collide in a unique index).
    - Append-only: db/immutability.py rejects UPDATE and DELETE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import RATE, Base, UTCDateTime, UUIDString


class SnapshotType(str, Enum):
    CREATION = "CREATION"
    SETTLEMENT = "SETTLEMENT"


class FxSnapshot(Base):
    __tablename__ = "fx_snapshots"

    __table_args__ = (
        UniqueConstraint(
            "payment_id", "snapshot_type", "token_key",
            name="uq_fx_snapshots_payment_type_token",
        ),
    )

    payment_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    snapshot_type: Mapped[str] = mapped_column(String(20), nullable=False)
    token: Mapped[str | None] = mapped_column(String(10), nullable=True)
    token_key: Mapped[str] = mapped_column(String(10), nullable=False, default="")
    base_currency: Mapped[str] = mapped_column(String(10), nullable=False)
    quote_currency: Mapped[str] = mapped_column(String(10), nullable=False)
    rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    captured_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<FxSnapshot {self.snapshot_type} {self.base_currency}/"
            f"{self.quote_currency}={self.rate} payment={self.payment_id}>"
        )
