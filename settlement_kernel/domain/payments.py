"""
Payment-side types read by the settlement core.

Payments and their events are produced by the collection layer.  This module
types the parts the core reads: statuses, event types, the confirmation
event handed to the pipeline, and the per-producer confirmation metadata.

Confirmation metadata is stored as a JSON blob written by two different
producers (card processor webhooks and the Hedera confirmation route).  It is
parsed into a small tagged union at the point where it is read, so nothing
downstream indexes into an untyped dict.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Union
from uuid import UUID

from settlement_kernel.domain.assets import CryptoToken, parse_token
from settlement_kernel.domain.rails import PaymentMethod, Rail
from settlement_kernel.exceptions import InvalidConfirmationError


class PaymentStatus(str, Enum):
    OPEN = "OPEN"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    CANCELED = "CANCELED"


class PaymentEventType(str, Enum):
    CREATED = "CREATED"
    PAYMENT_INITIATED = "PAYMENT_INITIATED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    EXPIRED = "EXPIRED"
    CANCELED = "CANCELED"


# Producers have used several spellings for the token field over time.
_TOKEN_KEYS = ("tokenType", "token_type", "paymentToken", "token")
_REFERENCE_KEYS = ("transactionId", "transaction_id", "paymentIntentId", "payment_intent_id")


@dataclass(frozen=True)
class CardConfirmation:
    """Confirmation produced by the card processor."""

    transaction_reference: str
    amount: Decimal | None = None
    currency: str | None = None

    @property
    def rail(self) -> Rail:
        return Rail.STRIPE

    @property
    def token(self) -> None:
        return None


@dataclass(frozen=True)
class CryptoConfirmation:
    """Confirmation produced by the Hedera rail for one specific token."""

    transaction_reference: str
    token: CryptoToken
    amount: Decimal | None = None

    @property
    def rail(self) -> Rail:
        return Rail.for_token(self.token)


Confirmation = Union[CardConfirmation, CryptoConfirmation]


@dataclass(frozen=True)
class PaymentConfirmation:
    """The "payment confirmed" event consumed from the collection layer."""

    payment_id: UUID
    organization_id: UUID
    rail: Rail
    amount: Decimal
    currency: str
    transaction_reference: str
    confirmed_at: datetime

    @property
    def token(self) -> CryptoToken | None:
        return self.rail.token


def _first(metadata: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = metadata.get(key)
        if value not in (None, ""):
            return value
    return None


def token_from_metadata(metadata: Mapping[str, Any] | None) -> CryptoToken | None:
    if not metadata:
        return None
    return parse_token(_first(metadata, _TOKEN_KEYS))


def rail_from_event(
    payment_method: str | None,
    metadata: Mapping[str, Any] | None,
) -> Rail | None:
    """Best-effort rail for reporting; None when the event cannot be attributed."""
    try:
        method = PaymentMethod(payment_method)
    except ValueError:
        return None
    return Rail.resolve(method, token_from_metadata(metadata))


def parse_confirmation(
    payment_method: str | None,
    external_reference: str | None,
    metadata: Mapping[str, Any] | None,
    amount_received: Decimal | None = None,
    currency_received: str | None = None,
    payment_id: str | None = None,
) -> Confirmation:
    """
    Parse a stored confirmation event into its typed form.

    Raises:
        InvalidConfirmationError: unknown method, missing transaction
            reference, or a crypto event without a recognizable token.
    """
    metadata = metadata or {}
    try:
        method = PaymentMethod(payment_method)
    except ValueError:
        raise InvalidConfirmationError(payment_id, f"unknown payment method {payment_method!r}")

    reference = external_reference or _first(metadata, _REFERENCE_KEYS)
    if not reference:
        raise InvalidConfirmationError(payment_id, "Transaction ID not found in payment event")

    if method is PaymentMethod.STRIPE:
        return CardConfirmation(
            transaction_reference=str(reference),
            amount=amount_received,
            currency=currency_received,
        )

    token = token_from_metadata(metadata) or parse_token(currency_received)
    if token is None:
        raise InvalidConfirmationError(payment_id, "token type missing from Hedera confirmation")
    return CryptoConfirmation(
        transaction_reference=str(reference),
        token=token,
        amount=amount_received,
    )
