"""
Data-integrity alerts.

Integrity problems (an unbalanced payment, a clearing account that does not
match the payments it should hold) are never raised into the pipeline that
found them.  They are emitted as ERROR-level structured log events with a
stable ``observability_event`` field so log pipelines can page on them.

Usage:
    from settlement_services.alerts import log_reconciliation_mismatch
    log_reconciliation_mismatch(organization_id=str(org), total_difference=diff)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from settlement_kernel.logging_config import get_logger

logger = get_logger("services.alerts")

EVENT_INTEGRITY_ALERT = "integrity_alert"

ALERT_RECONCILIATION_MISMATCH = "RECONCILIATION_MISMATCH"
ALERT_UNBALANCED_PAYMENT = "UNBALANCED_PAYMENT"


def log_integrity_alert(*, alert_type: str, organization_id: str, **extra: Any) -> None:
    payload: dict[str, Any] = {
        "observability_event": EVENT_INTEGRITY_ALERT,
        "alert_type": alert_type,
        "organization_id": organization_id,
        **extra,
    }
    logger.error(EVENT_INTEGRITY_ALERT, extra=payload)


def log_reconciliation_mismatch(
    *,
    organization_id: str,
    total_difference: Decimal,
    tolerance: Decimal,
    rails: dict[str, str] | None = None,
) -> None:
    """``rails`` maps each rail with a non-zero difference to that difference."""
    log_integrity_alert(
        alert_type=ALERT_RECONCILIATION_MISMATCH,
        organization_id=organization_id,
        total_difference=str(total_difference),
        tolerance=str(tolerance),
        rails=rails or {},
    )


def log_unbalanced_payment(
    *,
    organization_id: str,
    payment_id: str,
    total_debits: Decimal,
    total_credits: Decimal,
) -> None:
    log_integrity_alert(
        alert_type=ALERT_UNBALANCED_PAYMENT,
        organization_id=organization_id,
        payment_id=payment_id,
        total_debits=str(total_debits),
        total_credits=str(total_credits),
    )
