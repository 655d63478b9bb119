"""
Typed exception hierarchy for the settlement engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The sync pipeline decides whether a failed job is retried by looking at the
error it raised.  Message parsing is kept as the last resort for errors coming
from remote systems we do not control; everything raised by this code base is
a typed exception carrying:

  1. A class-level ``code`` (machine-readable, stored on the SyncJob row)
  2. Structured attributes (payment id, rail, status code, ...)

    try:
        orchestrator.sync_payment(payment_id, organization_id)
    except ClearingAccountNotMappedError as e:
        notify_merchant(e.rail)              # actionable setup problem
    except RateUnavailableError as e:
        log.warning("no price data", extra={"pair": e.pair})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SettlementError (base)
    |
    +-- RateError
    |   +-- RateUnavailableError
    |   +-- UnsupportedPairError
    |   +-- RateProviderError
    |   +-- InvalidRateError
    |
    +-- LedgerError
    |   +-- UnbalancedPostingError
    |   +-- LedgerAccountNotFoundError
    |   +-- ImmutableRecordError
    |
    +-- PaymentError
    |   +-- PaymentNotFoundError
    |   +-- PaymentNotSettledError
    |   +-- ConfirmationEventNotFoundError
    |   +-- InvalidConfirmationError
    |
    +-- SettlementConfigurationError
    |   +-- ClearingAccountNotMappedError
    |   +-- RevenueAccountNotMappedError
    |   +-- MissingCredentialsError
    |
    +-- SyncError
        +-- SyncJobNotFoundError
        +-- AccountingApiError
        +-- AccountingTransportError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-----------------------------------
Rate            | RATE_UNAVAILABLE              | No provider could supply a rate
                | UNSUPPORTED_PAIR              | Provider cannot quote the pair
                | RATE_PROVIDER_ERROR           | One provider failed (see reason)
                | INVALID_RATE                  | Rate is zero/negative/malformed
----------------|-------------------------------|-----------------------------------
Ledger          | UNBALANCED_POSTING            | Debits != Credits
                | LEDGER_ACCOUNT_NOT_FOUND      | Account code missing for org
                | IMMUTABLE_RECORD              | Update/delete of append-only row
----------------|-------------------------------|-----------------------------------
Payment         | PAYMENT_NOT_FOUND             | Payment id unknown for org
                | PAYMENT_NOT_SETTLED           | Payment is not PAID
                | CONFIRMATION_EVENT_NOT_FOUND  | No PAYMENT_CONFIRMED event
                | INVALID_CONFIRMATION          | Event metadata unusable
----------------|-------------------------------|-----------------------------------
Configuration   | CLEARING_ACCOUNT_NOT_MAPPED   | Rail has no clearing mapping
                | REVENUE_ACCOUNT_NOT_MAPPED    | No revenue account configured
                | MISSING_CREDENTIALS           | No accounting connection
----------------|-------------------------------|-----------------------------------
Sync            | SYNC_JOB_NOT_FOUND            | Job id unknown
                | ACCOUNTING_API_ERROR          | Remote system returned an error
                | ACCOUNTING_TRANSPORT_ERROR    | Remote system unreachable

Configuration errors are never retried by the sync queue.  Accounting API
errors are retried or not depending on their HTTP status.
"""

from decimal import Decimal


class SettlementError(Exception):
    """
    Base exception for all settlement engine errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "SETTLEMENT_ERROR"


# Rate-related exceptions


class RateError(SettlementError):
    """Base exception for exchange-rate errors."""

    code: str = "RATE_ERROR"


class RateUnavailableError(RateError):
    """No provider could supply a rate for the requested pair."""

    code: str = "RATE_UNAVAILABLE"

    def __init__(self, base: str, quote: str, reason: str = ""):
        self.base = base
        self.quote = quote
        self.pair = f"{base}/{quote}"
        self.reason = reason
        message = f"Exchange rate unavailable for {self.pair}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnsupportedPairError(RateError):
    """A provider was asked for a pair it cannot quote."""

    code: str = "UNSUPPORTED_PAIR"

    def __init__(self, provider: str, base: str, quote: str):
        self.provider = provider
        self.pair = f"{base}/{quote}"
        super().__init__(f"Unsupported currency pair {self.pair} for {provider}")


class RateProviderError(RateError):
    """
    A single provider failed to produce rates.

    ``reason`` is one of API_ERROR, RATE_NOT_FOUND or FETCH_ERROR.  The rate
    service catches these and falls through to the next provider.
    """

    code: str = "RATE_PROVIDER_ERROR"

    def __init__(
        self,
        provider: str,
        reason: str,
        message: str,
        status_code: int | None = None,
    ):
        self.provider = provider
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class InvalidRateError(RateError):
    """Rate value is zero, negative or could not be parsed."""

    code: str = "INVALID_RATE"

    def __init__(self, pair: str, rate: object):
        self.pair = pair
        self.rate = str(rate)
        super().__init__(f"Invalid exchange rate for {pair}: {rate}")


# Ledger-related exceptions


class LedgerError(SettlementError):
    """Base exception for ledger errors."""

    code: str = "LEDGER_ERROR"


class UnbalancedPostingError(LedgerError):
    """Debits and credits of a posting do not match."""

    code: str = "UNBALANCED_POSTING"

    def __init__(self, debits: Decimal, credits: Decimal, currency: str):
        self.debits = debits
        self.credits = credits
        self.currency = currency
        super().__init__(
            f"Posting is unbalanced: debits {debits} != credits {credits} {currency}"
        )


class LedgerAccountNotFoundError(LedgerError):
    """Account code is not part of the organization's chart of accounts."""

    code: str = "LEDGER_ACCOUNT_NOT_FOUND"

    def __init__(self, organization_id: str, account_code: str):
        self.organization_id = organization_id
        self.account_code = account_code
        super().__init__(
            f"Ledger account {account_code} not found for organization {organization_id}"
        )


class ImmutableRecordError(LedgerError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABLE_RECORD"

    def __init__(self, entity_type: str, entity_id: str, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(
            f"{entity_type} {entity_id} is append-only; {operation} rejected"
        )


# Payment-related exceptions


class PaymentError(SettlementError):
    """Base exception for payment lookups."""

    code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class PaymentNotSettledError(PaymentError):
    """Payment is not in the PAID state, so there is nothing to sync."""

    code: str = "PAYMENT_NOT_SETTLED"

    def __init__(self, payment_id: str, status: str):
        self.payment_id = payment_id
        self.status = status
        super().__init__(f"Payment {payment_id} is not paid (status: {status})")


class ConfirmationEventNotFoundError(PaymentError):
    code: str = "CONFIRMATION_EVENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment confirmation event not found for {payment_id}")


class InvalidConfirmationError(PaymentError):
    """Confirmation metadata is missing a required field."""

    code: str = "INVALID_CONFIRMATION"

    def __init__(self, payment_id: str | None, reason: str):
        self.payment_id = payment_id
        self.reason = reason
        super().__init__(f"Invalid payment confirmation for {payment_id}: {reason}")


# Configuration exceptions


class SettlementConfigurationError(SettlementError):
    """Merchant setup problem; fatal for the affected sync."""

    code: str = "CONFIGURATION_ERROR"


class ClearingAccountNotMappedError(SettlementConfigurationError):
    code: str = "CLEARING_ACCOUNT_NOT_MAPPED"

    def __init__(self, organization_id: str, rail: str):
        self.organization_id = organization_id
        self.rail = rail
        super().__init__(
            f"Clearing account not mapped for {rail}. "
            "Please configure accounting account mappings."
        )


class RevenueAccountNotMappedError(SettlementConfigurationError):
    code: str = "REVENUE_ACCOUNT_NOT_MAPPED"

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(
            "Revenue account not mapped. Please configure accounting account mappings."
        )


class MissingCredentialsError(SettlementConfigurationError):
    code: str = "MISSING_CREDENTIALS"

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(
            f"No active accounting connection for organization {organization_id}"
        )


# Sync exceptions


class SyncError(SettlementError):
    """Base exception for accounting sync errors."""

    code: str = "SYNC_ERROR"


class SyncJobNotFoundError(SyncError):
    code: str = "SYNC_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Sync job not found: {job_id}")


class AccountingApiError(SyncError):
    """The remote accounting system answered with an error status."""

    code: str = "ACCOUNTING_API_ERROR"

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.detail = message
        super().__init__(f"[{status_code}] {message}")


class AccountingTransportError(SyncError):
    """The remote accounting system could not be reached."""

    code: str = "ACCOUNTING_TRANSPORT_ERROR"

    def __init__(self, message: str):
        self.detail = message
        super().__init__(f"Accounting network error: {message}")
