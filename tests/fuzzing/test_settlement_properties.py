"""
Property-based tests for the pure settlement domain.

Boundaries fuzzed here:
- Settlement postings: any set of amounts nets to zero across both sides
- Account balances: sign convention per account type
- Error classification: keyword precedence, case folding, HTTP status mapping
- Retry schedule: configured delays are applied exactly, then exhausted
- Amount formatting: value preserved, never fewer than two places
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from settlement_kernel.domain.ledger import (
    DEFAULT_BALANCE_TOLERANCE,
    EntryType,
    check_balance,
    compute_balance,
    format_amount,
)
from settlement_kernel.domain.rails import AccountType
from settlement_kernel.exceptions import AccountingApiError
from settlement_sync.domain.classification import categorize_error, classify_exception
from settlement_sync.domain.retry import RetrySchedule
from settlement_sync.domain.types import ErrorCategory

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("999999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
entries = st.lists(st.tuples(st.sampled_from(EntryType), amounts), max_size=30)
ascii_text = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789 :-_", max_size=60)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestBalanceProperties:
    @given(st.lists(amounts, min_size=1, max_size=30))
    @settings(max_examples=200)
    def test_settlement_postings_always_balance(self, settled):
        lines = []
        for amount in settled:
            lines.append((EntryType.DEBIT, amount))
            lines.append((EntryType.CREDIT, amount))

        check = check_balance(lines)

        assert check.is_balanced
        assert check.difference == Decimal("0")
        assert check.total_debits == sum(settled)

    @given(entries)
    def test_difference_is_debits_minus_credits(self, lines):
        check = check_balance(lines)
        assert check.difference == check.total_debits - check.total_credits
        assert check.is_balanced == (abs(check.difference) < DEFAULT_BALANCE_TOLERANCE)

    @given(entries)
    def test_debit_and_credit_normal_accounts_mirror(self, lines):
        asset = compute_balance(AccountType.ASSET, lines)
        revenue = compute_balance(AccountType.REVENUE, lines)
        assert asset == -revenue
        assert asset == check_balance(lines).difference

    @given(entries, entries)
    def test_balance_is_additive(self, first, second):
        combined = compute_balance(AccountType.ASSET, first + second)
        assert combined == compute_balance(AccountType.ASSET, first) + compute_balance(AccountType.ASSET, second)


class TestClassificationProperties:
    @given(ascii_text)
    def test_every_message_has_one_category(self, message):
        category = categorize_error(message)
        assert category in ErrorCategory
        assert categorize_error(message) is category

    @given(ascii_text)
    def test_case_insensitive(self, message):
        assert categorize_error(message.upper()) is categorize_error(message)

    @given(ascii_text, ascii_text)
    def test_permanent_keywords_win(self, prefix, suffix):
        message = f"{prefix} timeout not found 429 {suffix}"
        assert categorize_error(message) is ErrorCategory.PERMANENT

    @given(st.integers(min_value=400, max_value=599), ascii_text)
    def test_http_status_mapping(self, status, message):
        classification = classify_exception(AccountingApiError(status, message))

        if status == 429:
            assert classification.category is ErrorCategory.RATE_LIMIT
        elif status < 500:
            assert classification.category is ErrorCategory.PERMANENT
        else:
            assert classification.category is ErrorCategory.API_ERROR
        assert classification.retryable == (status == 429 or status >= 500)
        assert classification.code == "ACCOUNTING_API_ERROR"


class TestRetryScheduleProperties:
    @given(st.lists(st.integers(min_value=1, max_value=86400), min_size=1, max_size=10))
    def test_delays_applied_then_exhausted(self, delays):
        schedule = RetrySchedule(delays)

        for attempt, seconds in enumerate(delays):
            assert schedule.next_retry_time(attempt, NOW) == NOW + timedelta(seconds=seconds)
        assert schedule.next_retry_time(len(delays), NOW) is None
        assert schedule.max_retries == len(delays)


class TestFormatAmountProperties:
    @given(
        st.decimals(
            min_value=Decimal("0"),
            max_value=Decimal("999999999"),
            places=9,
            allow_nan=False,
            allow_infinity=False,
        )
    )
    def test_value_preserved_with_at_least_cents(self, value):
        text = format_amount(value)

        assert Decimal(text) == value
        assert "." in text
        assert len(text.split(".")[1]) >= 2
