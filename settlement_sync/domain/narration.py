"""
Narration and reference text attached to a payment in the accounting system.

The narration is the audit trail a bookkeeper reads next to the payment: the
rail, the on-chain or card transaction, and for crypto the FX rate that was
in force at settlement.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from settlement_kernel.domain.assets import CryptoToken, is_currency_matched
from settlement_kernel.domain.ledger import format_amount
from settlement_kernel.domain.payments import CardConfirmation, Confirmation

NO_FX_RISK_MARKER = "No FX risk - Currency matched payment"


@dataclass(frozen=True)
class SettlementFx:
    """Settlement snapshot values used in crypto narration."""

    rate: Decimal
    captured_at: datetime


def payment_reference(confirmation: Confirmation) -> str:
    if isinstance(confirmation, CardConfirmation):
        return f"STRIPE: {confirmation.transaction_reference[:20]}"
    return f"{confirmation.token.value}: {confirmation.transaction_reference[:30]}"


def _format_rate(rate: Decimal) -> str:
    return f"{rate:.8f}"


def build_narration(
    confirmation: Confirmation,
    *,
    amount: Decimal,
    currency: str,
    fx: SettlementFx | None = None,
) -> str:
    """
    Build the multi-line narration for a settled payment.

    Args:
        confirmation: Parsed confirmation event.
        amount: Invoice amount in the invoice currency.
        currency: Invoice currency.
        fx: Settlement rate and capture time, crypto only.
    """
    if isinstance(confirmation, CardConfirmation):
        return "\n".join(
            [
                "Payment via STRIPE",
                f"Transaction: {confirmation.transaction_reference}",
                f"Amount: {format_amount(amount)} {currency}",
            ]
        )

    token: CryptoToken = confirmation.token
    lines = [
        f"Payment via {confirmation.rail.label}",
        f"Transaction: {confirmation.transaction_reference}",
        f"Token: {token.value}",
    ]
    if fx is not None and confirmation.amount is not None:
        lines.append(
            f"FX Rate: {_format_rate(fx.rate)} {token.value}/{currency} "
            f"@ {fx.captured_at.isoformat()}"
        )
        lines.append(
            f"Amount: {format_amount(confirmation.amount)} {token.value} "
            f"= {format_amount(amount)} {currency}"
        )
    if is_currency_matched(token, currency):
        lines.append(NO_FX_RISK_MARKER)
    return "\n".join(lines)
