"""
Sync error classification.

Typed exceptions raised by this code base are classified by type.  Anything
else (messages from remote systems, unexpected exceptions) falls back to
case-insensitive keyword matching, checked in a fixed order so every message
lands in exactly one category.  Unrecognized errors are UNKNOWN and retried.
"""

from __future__ import annotations

from settlement_kernel.exceptions import (
    AccountingApiError,
    AccountingTransportError,
    RateError,
    SettlementConfigurationError,
    SettlementError,
)

from settlement_sync.domain.types import ErrorCategory, ErrorClassification

_KEYWORDS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (
        ErrorCategory.PERMANENT,
        ("not found", "invalid", "unauthorized", "forbidden", "bad request", "missing", "validation"),
    ),
    (ErrorCategory.RATE_LIMIT, ("rate limit", "too many requests", "429")),
    (ErrorCategory.NETWORK, ("timeout", "network", "econnrefused", "enotfound", "503", "504")),
    (ErrorCategory.API_ERROR, ("token", "expired", "500", "502", "accounting")),
)


def categorize_error(message: str | None) -> ErrorCategory:
    text = (message or "").lower()
    for category, keywords in _KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return ErrorCategory.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorClassification:
    message = str(exc) or type(exc).__name__
    code = exc.code if isinstance(exc, SettlementError) else None

    if isinstance(exc, SettlementConfigurationError):
        category = ErrorCategory.PERMANENT
    elif isinstance(exc, AccountingApiError):
        if exc.status_code == 429:
            category = ErrorCategory.RATE_LIMIT
        elif 400 <= exc.status_code < 500:
            category = ErrorCategory.PERMANENT
        else:
            category = ErrorCategory.API_ERROR
    elif isinstance(exc, AccountingTransportError):
        category = ErrorCategory.NETWORK
    elif isinstance(exc, RateError):
        category = ErrorCategory.API_ERROR
    else:
        category = categorize_error(message)

    return ErrorClassification(category=category, message=message, code=code)
