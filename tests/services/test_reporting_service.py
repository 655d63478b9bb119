"""
Dashboard reporting: revenue by rail, time series buckets, CSV export
and ledger balances.
"""

import csv
import io
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import event

from settlement_kernel.domain.payments import PaymentEventType, PaymentStatus
from settlement_kernel.domain.rails import ACCOUNTS_RECEIVABLE_CODE, Rail
from settlement_kernel.models.payment import PaymentEvent
from settlement_kernel.services.ledger_service import LedgerService
from settlement_services.reporting import (
    CSV_HEADERS,
    Granularity,
    ReportingService,
    period_key,
)


@pytest.fixture
def reporting(session, clock):
    return ReportingService(session, clock)


class TestRevenueSummary:
    def test_revenue_split_by_rail(self, reporting, make_payment, org_id):
        make_payment(org_id, amount="75.00")
        make_payment(org_id, amount="25.00", method="HEDERA", token="USDC")
        make_payment(org_id, amount="500.00", status=PaymentStatus.OPEN)

        summary = reporting.revenue_summary(org_id)

        assert summary.total_revenue == Decimal("100.00")
        assert summary.payment_count == 2
        assert summary.for_rail(Rail.STRIPE).percentage == Decimal("75.00")
        assert summary.for_rail(Rail.HEDERA_USDC).revenue == Decimal("25.00")
        assert summary.for_rail(Rail.HEDERA_USDC).percentage == Decimal("25.00")
        assert summary.for_rail(Rail.HEDERA_HBAR).count == 0
        assert [r.rail for r in summary.by_rail] == list(Rail)

    def test_percentages_round_half_up(self, reporting, make_payment, org_id):
        make_payment(org_id, amount="1.00")
        make_payment(org_id, amount="2.00", method="HEDERA", token="HBAR")

        summary = reporting.revenue_summary(org_id)

        assert summary.for_rail(Rail.STRIPE).percentage == Decimal("33.33")
        assert summary.for_rail(Rail.HEDERA_HBAR).percentage == Decimal("66.67")

    def test_empty(self, reporting, org_id):
        summary = reporting.revenue_summary(org_id)
        assert summary.total_revenue == Decimal("0")
        assert all(r.percentage == Decimal("0.00") for r in summary.by_rail)

    def test_unattributed_payment_is_excluded(self, reporting, make_payment, org_id):
        make_payment(org_id, method=None)
        assert reporting.revenue_summary(org_id).payment_count == 0

    def test_range_uses_paid_time(self, reporting, make_payment, org_id, clock):
        now = clock.now()
        make_payment(org_id, amount="10.00", created_at=now - timedelta(days=10), paid_at=now)
        make_payment(org_id, amount="20.00", created_at=now - timedelta(days=10))

        summary = reporting.revenue_summary(org_id, start=now - timedelta(days=1))

        assert summary.total_revenue == Decimal("10.00")


class TestTimeSeries:
    def test_daily_buckets_oldest_first(self, reporting, make_payment, org_id, clock):
        now = clock.now()
        make_payment(org_id, amount="10.00", created_at=now)
        make_payment(org_id, amount="5.00", created_at=now, method="HEDERA", token="HBAR")
        make_payment(org_id, amount="20.00", created_at=now - timedelta(days=1))

        series = reporting.time_series(org_id, Granularity.DAY)

        assert [p.period for p in series] == ["2025-12-31", "2026-01-01"]
        assert series[0].revenue == Decimal("20.00")
        assert series[1].revenue == Decimal("15.00")
        assert series[1].count == 2
        assert series[1].by_rail == {Rail.STRIPE: Decimal("10.00"), Rail.HEDERA_HBAR: Decimal("5.00")}

    def test_default_window_is_thirty_days(self, reporting, make_payment, org_id, clock):
        make_payment(org_id, created_at=clock.now() - timedelta(days=40))
        make_payment(org_id, created_at=clock.now() - timedelta(days=29))

        series = reporting.time_series(org_id)

        assert [p.period for p in series] == ["2025-12-03"]

    def test_weekly_and_monthly_buckets(self, reporting, make_payment, org_id, clock):
        now = clock.now()
        make_payment(org_id, created_at=now)
        make_payment(org_id, created_at=now - timedelta(days=4))

        weekly = reporting.time_series(org_id, "week")
        monthly = reporting.time_series(org_id, Granularity.MONTH)

        assert [p.period for p in weekly] == ["2025-W52", "2026-W01"]
        assert [p.period for p in monthly] == ["2025-12", "2026-01"]

    def test_unknown_granularity(self, reporting, org_id):
        with pytest.raises(ValueError):
            reporting.time_series(org_id, "quarter")


class TestPeriodKey:
    @pytest.mark.parametrize(
        "granularity,expected",
        [
            (Granularity.DAY, "2026-01-01"),
            (Granularity.WEEK, "2026-W01"),
            (Granularity.MONTH, "2026-01"),
        ],
    )
    def test_labels(self, clock, granularity, expected):
        assert period_key(clock.now(), granularity) == expected

    def test_iso_week_crosses_year(self, clock):
        assert period_key(clock.now() - timedelta(days=3), Granularity.WEEK) == "2026-W01"


class TestCsvExport:
    def test_header_is_unquoted(self, reporting, org_id):
        assert reporting.export_csv(org_id) == ",".join(CSV_HEADERS) + "\n"

    def test_rows_newest_first_and_quoted(self, reporting, make_payment, org_id, clock):
        older = make_payment(
            org_id,
            amount="12.5",
            created_at=clock.now() - timedelta(days=1),
            description='Design "phase 1"',
            invoice_reference="INV-7",
        )
        newer = make_payment(org_id, amount="1912.0458891", method="HEDERA", token="HBAR", customer_email=None)
        make_payment(org_id, status=PaymentStatus.OPEN, description=None)

        text = reporting.export_csv(org_id)
        lines = text.splitlines()

        assert lines[0] == ",".join(CSV_HEADERS)
        assert f'"2025-12-31","{older.short_code}","PAID","12.50","USD","STRIPE","STRIPE"' in lines[3]
        assert '"Design ""phase 1""","INV-7","customer@example.com"' in lines[3]
        rows = list(csv.reader(io.StringIO(text)))[1:]
        hedera = next(r for r in rows if r[1] == newer.short_code)
        assert hedera[3:7] == ["1912.0458891", "USD", "HEDERA", "HBAR"]
        assert hedera[9] == ""
        unpaid = next(r for r in rows if r[2] == "OPEN")
        assert unpaid[5:8] == ["N/A", "N/A", ""]

    def test_status_filter(self, reporting, make_payment, org_id):
        make_payment(org_id)
        make_payment(org_id, status=PaymentStatus.EXPIRED)

        rows = list(csv.reader(io.StringIO(reporting.export_csv(org_id, status=PaymentStatus.EXPIRED))))

        assert len(rows) == 2
        assert rows[1][2] == "EXPIRED"

    def test_date_range_uses_creation_time(self, reporting, make_payment, org_id, clock):
        make_payment(org_id, created_at=clock.now() - timedelta(days=5))
        make_payment(org_id)

        text = reporting.export_csv(org_id, start=clock.now() - timedelta(days=1))

        assert len(text.splitlines()) == 2

    def test_latest_confirmation_names_the_method(self, reporting, session, make_payment, org_id, clock):
        payment = make_payment(org_id)
        session.add(
            PaymentEvent(
                payment_id=payment.id,
                event_type=PaymentEventType.PAYMENT_CONFIRMED.value,
                payment_method="HEDERA",
                external_reference="0.0.12345@1700000999.000000001",
                currency_received="USDC",
                event_metadata={"tokenType": "USDC"},
                created_at=clock.now() + timedelta(minutes=5),
                updated_at=clock.now() + timedelta(minutes=5),
            )
        )
        session.flush()

        rows = list(csv.reader(io.StringIO(reporting.export_csv(org_id))))

        assert rows[1][5:7] == ["HEDERA", "USDC"]

    def test_confirmations_loaded_in_one_query(self, reporting, engine, make_payment, org_id):
        for _ in range(5):
            make_payment(org_id)
        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(engine, "before_cursor_execute", record)
        try:
            text = reporting.export_csv(org_id)
        finally:
            event.remove(engine, "before_cursor_execute", record)

        assert len(text.splitlines()) == 6
        selects = [s for s in statements if s.lstrip().upper().startswith("SELECT")]
        assert len(selects) == 2


class TestLedgerBalances:
    def test_clearing_accounts_by_rail(self, reporting, session, clock, make_payment, org_id):
        payment = make_payment(org_id)
        LedgerService(session, clock).post_settlement(
            organization_id=org_id, payment_id=payment.id, rail=Rail.STRIPE,
            amount=Decimal("100.00"), currency="USD",
        )

        balances = reporting.ledger_balances(org_id)

        assert set(balances.clearing_accounts) == set(Rail)
        assert balances.clearing_accounts[Rail.STRIPE].balance == Decimal("100.00")
        assert balances.clearing_accounts[Rail.HEDERA_HBAR].entry_count == 0
        receivable = next(b for b in balances.other_accounts if b.code == ACCOUNTS_RECEIVABLE_CODE)
        assert receivable.total_credits == Decimal("100.00")
        assert len(balances.all_accounts) == len(balances.clearing_accounts) + len(balances.other_accounts)
