"""
FxSnapshotService -- pins exchange rates to payments.

Contract:
    - One snapshot per (payment, kind, token).  Capturing a kind that
      already exists returns the stored row without fetching a rate.
      Concurrent captures race on the unique constraint; the loser re-reads.
    - Creation snapshots may be served from the rate cache.  Settlement
      snapshots always fetch a fresh rate.
    - Snapshots are append-only; corrections are never written as updates.

Failure modes:
    - RateUnavailableError when no provider can price the pair.
    - InvalidRateError when the fetched rate fails validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from settlement_kernel.domain.assets import CryptoToken, parse_token
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.rates import CurrencyPair, ExchangeRate
from settlement_kernel.exceptions import InvalidRateError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.fx_snapshot import FxSnapshot, SnapshotType

from settlement_fx.rate_service import RateService
from settlement_fx.validation import validate_rate

logger = get_logger("fx.snapshots")

RATE_QUANTUM = Decimal("0.000000000001")


@dataclass(frozen=True)
class FxSnapshotRecord:
    snapshot_id: UUID
    payment_id: UUID
    snapshot_type: SnapshotType
    token: CryptoToken | None
    base_currency: str
    quote_currency: str
    rate: Decimal
    provider: str
    captured_at: datetime


@dataclass(frozen=True)
class RateVariance:
    creation_rate: Decimal
    settlement_rate: Decimal
    variance: Decimal
    variance_percent: Decimal


def _to_record(row: FxSnapshot) -> FxSnapshotRecord:
    return FxSnapshotRecord(
        snapshot_id=row.id,
        payment_id=row.payment_id,
        snapshot_type=SnapshotType(row.snapshot_type),
        token=parse_token(row.token),
        base_currency=row.base_currency,
        quote_currency=row.quote_currency,
        rate=row.rate,
        provider=row.provider,
        captured_at=row.captured_at,
    )


def _token_key(token: CryptoToken | None) -> str:
    return token.value if token else ""


class FxSnapshotService:
    def __init__(
        self,
        session: Session,
        rate_service: RateService,
        clock: Clock | None = None,
    ):
        self._session = session
        self._rates = rate_service
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Capture
    # -------------------------------------------------------------------------

    def capture_creation_snapshot(
        self,
        payment_id: UUID,
        base: str,
        quote: str,
        token: CryptoToken | str | None = None,
    ) -> FxSnapshotRecord:
        return self._capture(payment_id, SnapshotType.CREATION, base, quote, token, use_cache=True)

    def capture_settlement_snapshot(
        self,
        payment_id: UUID,
        base: str,
        quote: str,
        token: CryptoToken | str | None = None,
    ) -> FxSnapshotRecord:
        return self._capture(payment_id, SnapshotType.SETTLEMENT, base, quote, token, use_cache=False)

    def capture_all_creation_snapshots(
        self,
        payment_id: UUID,
        quote: str,
    ) -> list[FxSnapshotRecord]:
        """
        One creation snapshot per supported token, priced in one batch.

        Tokens whose rate could not be fetched are skipped and logged; the
        returned list holds the snapshots that exist afterwards.
        """
        records: dict[CryptoToken, FxSnapshotRecord] = {}
        missing: list[CryptoToken] = []
        for token in CryptoToken:
            existing = self._find(payment_id, SnapshotType.CREATION, token)
            if existing is not None:
                records[token] = _to_record(existing)
            else:
                missing.append(token)

        if missing:
            batch = self._rates.get_rates([CurrencyPair(t.value, quote) for t in missing])
            for token in missing:
                pair = CurrencyPair(token.value, quote)
                rate = batch.rates.get(pair)
                if rate is None:
                    logger.warning(
                        "fx_snapshot_skipped",
                        extra={
                            "payment_id": str(payment_id),
                            "pair": str(pair),
                            "error": str(batch.errors.get(pair)),
                        },
                    )
                    continue
                try:
                    records[token] = self._insert(payment_id, SnapshotType.CREATION, token, rate)
                except InvalidRateError:
                    logger.warning(
                        "fx_snapshot_rejected",
                        extra={"payment_id": str(payment_id), "pair": str(pair), "rate": str(rate.rate)},
                    )

        logger.info(
            "fx_creation_snapshots_captured",
            extra={"payment_id": str(payment_id), "quote": quote, "count": len(records)},
        )
        return [records[t] for t in CryptoToken if t in records]

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_snapshots(self, payment_id: UUID) -> list[FxSnapshotRecord]:
        rows = self._session.execute(
            select(FxSnapshot)
            .where(FxSnapshot.payment_id == payment_id)
            .order_by(FxSnapshot.captured_at, FxSnapshot.snapshot_type, FxSnapshot.token_key)
        ).scalars()
        return [_to_record(r) for r in rows]

    def get_snapshot(
        self,
        payment_id: UUID,
        snapshot_type: SnapshotType,
        token: CryptoToken | str | None = None,
    ) -> FxSnapshotRecord | None:
        row = self._find(payment_id, snapshot_type, parse_token(token))
        return _to_record(row) if row is not None else None

    def get_snapshots_by_token(
        self,
        payment_id: UUID,
        token: CryptoToken | str,
    ) -> list[FxSnapshotRecord]:
        token_value = _token_key(parse_token(token))
        rows = self._session.execute(
            select(FxSnapshot)
            .where(FxSnapshot.payment_id == payment_id, FxSnapshot.token_key == token_value)
            .order_by(FxSnapshot.captured_at)
        ).scalars()
        return [_to_record(r) for r in rows]

    def calculate_rate_variance(
        self,
        payment_id: UUID,
        token: CryptoToken | str | None = None,
    ) -> RateVariance | None:
        """
        Signed variance of the settlement rate against the creation rate.

        Without ``token`` the settlement snapshot's own token is used.
        Returns None ("variance unavailable") when either snapshot is
        missing or either rate is zero.
        """
        parsed = parse_token(token)
        if token is None:
            settlement_row = self._session.execute(
                select(FxSnapshot)
                .where(
                    FxSnapshot.payment_id == payment_id,
                    FxSnapshot.snapshot_type == SnapshotType.SETTLEMENT.value,
                )
                .order_by(FxSnapshot.captured_at.desc())
                .limit(1)
            ).scalar_one_or_none()
            parsed = parse_token(settlement_row.token) if settlement_row else None
        else:
            settlement_row = self._find(payment_id, SnapshotType.SETTLEMENT, parsed)

        creation_row = self._find(payment_id, SnapshotType.CREATION, parsed)
        if creation_row is None or settlement_row is None:
            return None
        creation_rate = creation_row.rate
        settlement_rate = settlement_row.rate
        if not creation_rate or not settlement_rate:
            return None

        variance = settlement_rate - creation_rate
        return RateVariance(
            creation_rate=creation_rate,
            settlement_rate=settlement_rate,
            variance=variance,
            variance_percent=variance / creation_rate * 100,
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _find(
        self,
        payment_id: UUID,
        snapshot_type: SnapshotType,
        token: CryptoToken | None,
    ) -> FxSnapshot | None:
        return self._session.execute(
            select(FxSnapshot).where(
                FxSnapshot.payment_id == payment_id,
                FxSnapshot.snapshot_type == snapshot_type.value,
                FxSnapshot.token_key == _token_key(token),
            )
        ).scalar_one_or_none()

    def _capture(
        self,
        payment_id: UUID,
        snapshot_type: SnapshotType,
        base: str,
        quote: str,
        token: CryptoToken | str | None,
        *,
        use_cache: bool,
    ) -> FxSnapshotRecord:
        parsed = parse_token(token) if token is not None else parse_token(base)
        existing = self._find(payment_id, snapshot_type, parsed)
        if existing is not None:
            logger.debug(
                "fx_snapshot_exists",
                extra={"payment_id": str(payment_id), "snapshot_type": snapshot_type.value},
            )
            return _to_record(existing)

        rate = self._rates.get_rate(base, quote, use_cache=use_cache)
        return self._insert(payment_id, snapshot_type, parsed, rate)

    def _insert(
        self,
        payment_id: UUID,
        snapshot_type: SnapshotType,
        token: CryptoToken | None,
        rate: ExchangeRate,
    ) -> FxSnapshotRecord:
        validation = validate_rate(rate.base, rate.quote, rate.rate)
        if not validation.is_valid:
            raise InvalidRateError(f"{rate.base}/{rate.quote}", rate.rate)
        for warning in validation.warnings:
            logger.warning(
                "fx_rate_validation_warning",
                extra={"payment_id": str(payment_id), "warning": warning},
            )

        row = FxSnapshot(
            id=uuid4(),
            payment_id=payment_id,
            snapshot_type=snapshot_type.value,
            token=token.value if token else None,
            token_key=_token_key(token),
            base_currency=rate.base,
            quote_currency=rate.quote,
            rate=rate.rate.quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP),
            provider=rate.provider,
            captured_at=self._clock.now(),
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(row)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            winner = self._find(payment_id, snapshot_type, token)
            if winner is None:
                raise
            return _to_record(winner)

        logger.info(
            "fx_snapshot_captured",
            extra={
                "payment_id": str(payment_id),
                "snapshot_type": snapshot_type.value,
                "pair": f"{rate.base}/{rate.quote}",
                "rate": rate.rate,
                "provider": rate.provider,
            },
        )
        return _to_record(row)
