"""
Pure sync domain: retry table, error classification and narration text.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from settlement_kernel.domain.assets import CryptoToken
from settlement_kernel.domain.payments import CardConfirmation, CryptoConfirmation
from settlement_kernel.exceptions import (
    AccountingApiError,
    AccountingTransportError,
    ClearingAccountNotMappedError,
    MissingCredentialsError,
    PaymentNotFoundError,
    RateUnavailableError,
)
from settlement_sync.domain.classification import categorize_error, classify_exception
from settlement_sync.domain.narration import (
    NO_FX_RISK_MARKER,
    SettlementFx,
    build_narration,
    payment_reference,
)
from settlement_sync.domain.retry import RetrySchedule
from settlement_sync.domain.types import ErrorCategory, SyncStatus

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestRetrySchedule:
    def test_default_table(self):
        schedule = RetrySchedule()
        assert schedule.max_retries == 5
        assert [schedule.delay_for(i).total_seconds() for i in range(5)] == [60, 300, 900, 3600, 21600]

    def test_exhausted_schedule(self):
        schedule = RetrySchedule()
        assert schedule.delay_for(5) is None
        assert schedule.next_retry_time(5, NOW) is None

    def test_next_retry_time(self):
        assert RetrySchedule().next_retry_time(1, NOW) == NOW + timedelta(minutes=5)

    def test_custom_table(self):
        schedule = RetrySchedule((10, 20))
        assert schedule.max_retries == 2
        assert schedule.next_retry_time(0, NOW) == NOW + timedelta(seconds=10)

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            RetrySchedule().delay_for(-1)

    def test_empty_table_rejected(self):
        with pytest.raises(ValueError):
            RetrySchedule(())


class TestStatus:
    def test_terminal_statuses(self):
        assert SyncStatus.SUCCESS.is_terminal
        assert SyncStatus.FAILED.is_terminal
        assert not SyncStatus.PENDING.is_terminal
        assert not SyncStatus.RETRYING.is_terminal


class TestCategorizeError:
    @pytest.mark.parametrize(
        "message, category",
        [
            ("Contact not found", ErrorCategory.PERMANENT),
            ("Invalid account code", ErrorCategory.PERMANENT),
            ("401 Unauthorized", ErrorCategory.PERMANENT),
            ("Validation failed on line items", ErrorCategory.PERMANENT),
            ("Rate limit exceeded", ErrorCategory.RATE_LIMIT),
            ("HTTP 429", ErrorCategory.RATE_LIMIT),
            ("Too Many Requests", ErrorCategory.RATE_LIMIT),
            ("Request timeout after 30s", ErrorCategory.NETWORK),
            ("connect ECONNREFUSED 10.0.0.1:443", ErrorCategory.NETWORK),
            ("503 Service Unavailable", ErrorCategory.NETWORK),
            ("Access token expired", ErrorCategory.API_ERROR),
            ("500 Internal Server Error", ErrorCategory.API_ERROR),
            ("Something odd happened", ErrorCategory.UNKNOWN),
            ("", ErrorCategory.UNKNOWN),
        ],
    )
    def test_keyword_categories(self, message, category):
        assert categorize_error(message) is category

    def test_permanent_keywords_win_over_later_categories(self):
        assert categorize_error("Invalid request: network timeout") is ErrorCategory.PERMANENT

    def test_none_is_unknown(self):
        assert categorize_error(None) is ErrorCategory.UNKNOWN

    def test_only_permanent_is_not_retryable(self):
        assert not ErrorCategory.PERMANENT.retryable
        for category in ErrorCategory:
            if category is not ErrorCategory.PERMANENT:
                assert category.retryable


class TestClassifyException:
    def test_configuration_errors_are_permanent(self):
        result = classify_exception(ClearingAccountNotMappedError("org", "HEDERA_USDC"))
        assert result.category is ErrorCategory.PERMANENT
        assert result.code == "CLEARING_ACCOUNT_NOT_MAPPED"
        assert not result.retryable

    def test_missing_credentials_is_permanent(self):
        assert classify_exception(MissingCredentialsError("org")).category is ErrorCategory.PERMANENT

    @pytest.mark.parametrize(
        "status, category",
        [
            (400, ErrorCategory.PERMANENT),
            (404, ErrorCategory.PERMANENT),
            (429, ErrorCategory.RATE_LIMIT),
            (500, ErrorCategory.API_ERROR),
            (503, ErrorCategory.API_ERROR),
        ],
    )
    def test_accounting_api_errors_by_status(self, status, category):
        assert classify_exception(AccountingApiError(status, "upstream said no")).category is category

    def test_transport_error_is_network(self):
        result = classify_exception(AccountingTransportError("connection reset"))
        assert result.category is ErrorCategory.NETWORK
        assert result.retryable

    def test_rate_error_is_api_error(self):
        result = classify_exception(RateUnavailableError("HBAR", "USD", "ALL_PROVIDERS_FAILED"))
        assert result.category is ErrorCategory.API_ERROR

    def test_other_settlement_errors_fall_back_to_keywords(self):
        result = classify_exception(PaymentNotFoundError("p-1"))
        assert result.category is ErrorCategory.PERMANENT
        assert result.code == "PAYMENT_NOT_FOUND"

    def test_plain_exception(self):
        result = classify_exception(ConnectionError("network is unreachable"))
        assert result.category is ErrorCategory.NETWORK
        assert result.code is None

    def test_exception_without_message_uses_type_name(self):
        result = classify_exception(RuntimeError())
        assert result.message == "RuntimeError"
        assert result.category is ErrorCategory.UNKNOWN


class TestNarration:
    def test_card_narration(self):
        confirmation = CardConfirmation("pi_3MtwBwLkdIwHu7ix28a3tqPa")
        narration = build_narration(confirmation, amount=Decimal("100.000000000"), currency="USD")
        assert narration == (
            "Payment via STRIPE\n"
            "Transaction: pi_3MtwBwLkdIwHu7ix28a3tqPa\n"
            "Amount: 100.00 USD"
        )

    def test_crypto_narration_with_settlement_rate(self):
        confirmation = CryptoConfirmation(
            "0.0.123456@1700000000.123456789", CryptoToken.HBAR, Decimal("1912.04588910")
        )
        fx = SettlementFx(rate=Decimal("0.0523"), captured_at=NOW)

        lines = build_narration(confirmation, amount=Decimal("100"), currency="USD", fx=fx).split("\n")

        assert lines == [
            "Payment via HEDERA_HBAR",
            "Transaction: 0.0.123456@1700000000.123456789",
            "Token: HBAR",
            f"FX Rate: 0.05230000 HBAR/USD @ {NOW.isoformat()}",
            "Amount: 1912.0458891 HBAR = 100.00 USD",
        ]

    def test_crypto_narration_without_snapshot_omits_fx_lines(self):
        confirmation = CryptoConfirmation("0.0.1@1.2", CryptoToken.HBAR, Decimal("10"))
        narration = build_narration(confirmation, amount=Decimal("1"), currency="USD")
        assert "FX Rate" not in narration
        assert NO_FX_RISK_MARKER not in narration

    def test_currency_matched_stablecoin_gets_marker(self):
        confirmation = CryptoConfirmation("0.0.1@1.2", CryptoToken.AUDD, Decimal("150"))
        fx = SettlementFx(rate=Decimal("1"), captured_at=NOW)

        narration = build_narration(confirmation, amount=Decimal("150"), currency="AUD", fx=fx)

        assert narration.splitlines()[-1] == NO_FX_RISK_MARKER
        assert "Amount: 150.00 AUDD = 150.00 AUD" in narration

    def test_cross_currency_stablecoin_has_no_marker(self):
        confirmation = CryptoConfirmation("0.0.1@1.2", CryptoToken.USDC, Decimal("99"))
        narration = build_narration(confirmation, amount=Decimal("150"), currency="AUD")
        assert NO_FX_RISK_MARKER not in narration

    def test_payment_references_are_truncated(self):
        card = CardConfirmation("pi_" + "x" * 40)
        crypto = CryptoConfirmation("0.0.123456@1700000000.123456789-extra-suffix", CryptoToken.USDC)

        assert payment_reference(card) == "STRIPE: " + ("pi_" + "x" * 40)[:20]
        assert payment_reference(crypto) == "USDC: 0.0.123456@1700000000.123456789-extra-suffix"[:36]
