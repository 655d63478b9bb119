"""
Module: settlement_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, portable UUID and UTC timestamp column
    types, the type annotation map, and the TrackedBase timestamp mixin.
Architecture position: Kernel > DB.  Lowest-level import target; every model
    file imports from here.  MUST NOT import from models/, services/,
    selectors/, or outer packages.

Invariants enforced:
    - UUID primary keys (uuid4) on every table.
    - Money maps to Numeric(38, 9) and exchange rates to Numeric(38, 12).
      NEVER use float for amounts or rates.
    - Timestamps are always timezone-aware UTC when read back, including on
      backends (SQLite) that drop the offset on storage.

Failure modes:
    - ValueError from UTCDateTime if a naive datetime is bound.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

MONEY = Numeric(38, 9)
RATE = Numeric(38, 12)


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(str(value))
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC.

    Contract:
        Binds only aware datetimes (converted to UTC).  Values loaded from a
        backend without offset support come back tagged as UTC, so comparisons
        against ``Clock.now()`` never mix naive and aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all settlement models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9); rate columns opt into RATE explicitly.
        - datetime maps to UTCDateTime.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: MONEY,
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackedBase(Base):
    """
    Abstract base with created/updated timestamps.

    Services pass timestamps from their injected Clock; the Python-side
    defaults only cover rows created outside a service (fixtures, scripts).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=_utcnow,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )


UUID = PyUUID
