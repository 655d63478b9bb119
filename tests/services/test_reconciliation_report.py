"""
Rail reconciliation: PAID payments per rail against clearing account
balances, with integrity alerts on mismatch.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_kernel.domain.ledger import EntryType
from settlement_kernel.domain.payments import PaymentStatus
from settlement_kernel.domain.rails import Rail
from settlement_kernel.models.ledger import LedgerEntry, LedgerPosting
from settlement_kernel.services.ledger_service import LedgerService
from settlement_services.alerts import ALERT_RECONCILIATION_MISMATCH, ALERT_UNBALANCED_PAYMENT
from settlement_services.reconciliation import ReconciliationReporter


@pytest.fixture
def ledger(session, clock):
    return LedgerService(session, clock)


@pytest.fixture
def reporter(session, clock):
    return ReconciliationReporter(session, clock, tolerance=Decimal("0.01"))


def _settle(ledger, payment, org_id, rail=Rail.STRIPE):
    ledger.post_settlement(
        organization_id=org_id,
        payment_id=payment.id,
        rail=rail,
        amount=payment.amount,
        currency=payment.currency,
    )


def _alerts(captured_logs, alert_type):
    return [
        r for r in captured_logs()
        if r["message"] == "integrity_alert" and r["alert_type"] == alert_type
    ]


class TestReconciled:
    def test_posted_payment_reconciles(self, reporter, ledger, make_payment, org_id, clock, captured_logs):
        payment = make_payment(org_id, amount="100.00")
        _settle(ledger, payment, org_id)

        report = reporter.build_report(org_id)

        stripe = report.for_rail(Rail.STRIPE)
        assert stripe.expected_revenue == Decimal("100.00")
        assert stripe.ledger_balance == Decimal("100.00")
        assert stripe.difference == Decimal("0")
        assert stripe.payment_count == 1
        assert report.total_difference == Decimal("0")
        assert report.is_reconciled
        assert report.generated_at == clock.now()
        assert _alerts(captured_logs, ALERT_RECONCILIATION_MISMATCH) == []

    def test_every_rail_is_reported(self, reporter, org_id):
        report = reporter.build_report(org_id)

        assert [r.rail for r in report.rails] == list(Rail)
        assert report.is_reconciled

    def test_mixed_rails(self, reporter, ledger, make_payment, org_id):
        card = make_payment(org_id, amount="40.00")
        hbar = make_payment(org_id, amount="60.00", method="HEDERA", token="HBAR")
        _settle(ledger, card, org_id)
        _settle(ledger, hbar, org_id, rail=Rail.HEDERA_HBAR)

        report = reporter.build_report(org_id)

        assert report.for_rail(Rail.HEDERA_HBAR).ledger_balance == Decimal("60.00")
        assert report.for_rail(Rail.STRIPE).ledger_balance == Decimal("40.00")
        assert report.is_reconciled

    def test_difference_below_tolerance(self, session, clock, ledger, make_payment, org_id):
        payment = make_payment(org_id, amount="100.00")
        ledger.post_settlement(
            organization_id=org_id, payment_id=payment.id, rail=Rail.STRIPE,
            amount=Decimal("99.995"), currency="USD",
        )

        report = ReconciliationReporter(session, clock, tolerance=Decimal("0.01")).build_report(org_id)

        assert report.total_difference == Decimal("0.005")
        assert report.is_reconciled


class TestMismatch:
    def test_unposted_payment_raises_alert(self, reporter, make_payment, org_id, captured_logs):
        make_payment(org_id, amount="100.00")

        report = reporter.build_report(org_id)

        assert not report.is_reconciled
        assert report.for_rail(Rail.STRIPE).difference == Decimal("100.00")
        assert report.total_difference == Decimal("100.00")
        alerts = _alerts(captured_logs, ALERT_RECONCILIATION_MISMATCH)
        assert len(alerts) == 1
        assert alerts[0]["level"] == "ERROR"
        assert alerts[0]["organization_id"] == str(org_id)
        assert list(alerts[0]["rails"]) == [Rail.STRIPE.value]

    def test_unpaid_payments_are_not_expected(self, reporter, make_payment, org_id):
        make_payment(org_id, status=PaymentStatus.OPEN)
        make_payment(org_id, status=PaymentStatus.EXPIRED)

        assert reporter.build_report(org_id).is_reconciled

    def test_paid_payment_without_confirmation_is_unattributed(self, reporter, make_payment, org_id):
        make_payment(org_id, method=None)

        report = reporter.build_report(org_id)

        assert report.unattributed_payment_count == 1
        assert report.is_reconciled

    def test_other_organization_is_ignored(self, reporter, make_payment, org_id):
        make_payment(uuid4(), amount="10.00")
        assert reporter.build_report(org_id).is_reconciled


class TestUnbalancedPayments:
    def test_one_sided_payment_raises_alert(self, reporter, ledger, session, clock, org_id, captured_logs):
        ledger.ensure_default_accounts(org_id)
        broken_payment = uuid4()
        posting = LedgerPosting(
            organization_id=org_id,
            payment_id=broken_payment,
            idempotency_key=f"manual:{broken_payment}",
            posted_at=clock.now(),
        )
        session.add(posting)
        session.add(
            LedgerEntry(
                posting=posting,
                organization_id=org_id,
                payment_id=broken_payment,
                account_code="1050",
                entry_type=EntryType.DEBIT.value,
                amount=Decimal("5.00"),
                currency="USD",
                created_at=clock.now(),
            )
        )
        session.flush()

        reporter.build_report(org_id)

        alerts = _alerts(captured_logs, ALERT_UNBALANCED_PAYMENT)
        assert [a["payment_id"] for a in alerts] == [str(broken_payment)]
        assert Decimal(alerts[0]["total_debits"]) == Decimal("5.00")
        assert Decimal(alerts[0]["total_credits"]) == Decimal("0")
