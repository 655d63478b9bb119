"""
ConfirmationService: settlement snapshot, then either the accounting
queue or a direct ledger posting.
"""

from collections.abc import Sequence
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_config.schema import RateCacheConfig
from settlement_fx.providers.base import RateProvider
from settlement_fx.rate_cache import RateCache
from settlement_fx.rate_service import RateService
from settlement_fx.snapshot_service import FxSnapshotService
from settlement_kernel.domain.assets import CryptoToken
from settlement_kernel.domain.payments import PaymentConfirmation
from settlement_kernel.domain.rails import Rail, clearing_account_code
from settlement_kernel.domain.rates import CurrencyPair, ExchangeRate
from settlement_kernel.exceptions import PaymentNotFoundError
from settlement_kernel.models.fx_snapshot import SnapshotType
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_services.confirmation import ConfirmationService
from settlement_services.reconciliation import ReconciliationReporter
from settlement_sync.domain.types import SyncStatus
from settlement_sync.services.queue import SyncQueueService


class FixedPriceProvider(RateProvider):
    name = "fixed"

    def __init__(self, prices, clock):
        super().__init__(priority=1, base_url="http://fixed", clock=clock)
        self.prices = prices

    def supports_pair(self, base, quote):
        return (base, quote) in self.prices

    def fetch_rates(self, pairs: Sequence[CurrencyPair]):
        return {
            p: ExchangeRate(p.base, p.quote, Decimal(self.prices[(p.base, p.quote)]), self.name, self._clock.now())
            for p in pairs
        }


@pytest.fixture
def service(session, clock):
    provider = FixedPriceProvider({("HBAR", "USD"): "0.0523"}, clock)
    snapshots = FxSnapshotService(session, RateService([provider], RateCache(RateCacheConfig(), clock)), clock)
    return ConfirmationService(session, snapshots, clock)


def _confirmation(org_id, clock, rail=Rail.STRIPE, amount="100.00", currency="USD", payment_id=None):
    return PaymentConfirmation(
        payment_id=payment_id or uuid4(),
        organization_id=org_id,
        rail=rail,
        amount=Decimal(amount),
        currency=currency,
        transaction_reference="pi_3MtwBwLkdIwHu7ix28a3tqPa",
        confirmed_at=clock.now(),
    )


class TestAccountingEnabled:
    def test_enqueues_sync_job(self, service, session, clock, merchant_settings, org_id):
        confirmation = _confirmation(org_id, clock)

        outcome = service.handle_confirmation(confirmation)

        assert outcome.sync_job_id is not None
        assert outcome.ledger_posting_id is None
        assert outcome.settlement_snapshot is None
        job = SyncQueueService(session, clock).get_job(outcome.sync_job_id)
        assert job.status is SyncStatus.PENDING
        assert job.payment_id == confirmation.payment_id

    def test_crypto_confirmation_pins_settlement_rate(self, service, clock, merchant_settings, org_id):
        outcome = service.handle_confirmation(_confirmation(org_id, clock, rail=Rail.HEDERA_HBAR))

        snapshot = outcome.settlement_snapshot
        assert snapshot.snapshot_type is SnapshotType.SETTLEMENT
        assert snapshot.token is CryptoToken.HBAR
        assert snapshot.rate == Decimal("0.0523")
        assert outcome.sync_job_id is not None

    def test_snapshot_failure_does_not_block(self, service, clock, merchant_settings, org_id, captured_logs):
        outcome = service.handle_confirmation(_confirmation(org_id, clock, rail=Rail.HEDERA_USDC))

        assert outcome.settlement_snapshot is None
        assert outcome.sync_job_id is not None
        record = next(r for r in captured_logs() if r["message"] == "settlement_snapshot_failed")
        assert record["token"] == "USDC"
        assert record["error_code"] == "RATE_UNAVAILABLE"


class TestLedgerOnly:
    def test_posts_settlement_directly(
        self, service, session, clock, make_settings, make_payment, org_id, captured_logs
    ):
        make_settings(org_id, accounting_enabled=False)
        payment = make_payment(org_id, amount="42.50")

        outcome = service.handle_confirmation(
            _confirmation(org_id, clock, amount="42.50", payment_id=payment.id)
        )

        assert outcome.sync_job_id is None
        assert outcome.ledger_posting_id is not None
        balance = LedgerSelector(session).account_balance(org_id, clearing_account_code(Rail.STRIPE))
        assert balance == Decimal("42.50")
        assert any(r["message"] == "settlement_posted_without_accounting" for r in captured_logs())

    def test_crypto_settlement_posts_invoiced_amount(
        self, service, session, clock, make_settings, make_payment, org_id
    ):
        make_settings(org_id, accounting_enabled=False)
        payment = make_payment(
            org_id,
            amount="100.00",
            currency="USD",
            method="HEDERA",
            token="HBAR",
            amount_received="1912.0458891",
        )

        service.handle_confirmation(
            _confirmation(
                org_id,
                clock,
                rail=Rail.HEDERA_HBAR,
                amount="1912.0458891",
                currency="HBAR",
                payment_id=payment.id,
            )
        )

        ledger = LedgerSelector(session)
        assert ledger.account_balance(org_id, clearing_account_code(Rail.HEDERA_HBAR)) == Decimal("100.00")
        check = ledger.check_payment_balance(payment.id)
        assert check.is_balanced
        assert check.total_debits == Decimal("100.00")

        report = ReconciliationReporter(session, clock, tolerance=Decimal("0.01")).build_report(org_id)
        assert report.is_reconciled
        assert report.for_rail(Rail.HEDERA_HBAR).difference == Decimal("0")

    def test_unknown_payment_is_rejected(self, service, session, clock, make_settings, org_id):
        make_settings(org_id, accounting_enabled=False)
        confirmation = _confirmation(org_id, clock)

        with pytest.raises(PaymentNotFoundError):
            service.handle_confirmation(confirmation)
        assert LedgerSelector(session).check_payment_balance(confirmation.payment_id).total_debits == Decimal("0")

    def test_payment_of_another_organization_is_rejected(
        self, service, clock, make_settings, make_payment, org_id
    ):
        make_settings(org_id, accounting_enabled=False)
        payment = make_payment(uuid4())

        with pytest.raises(PaymentNotFoundError):
            service.handle_confirmation(_confirmation(org_id, clock, payment_id=payment.id))

    def test_organization_without_settings(self, service, session, clock, make_payment, org_id):
        payment = make_payment(org_id)
        confirmation = _confirmation(org_id, clock, payment_id=payment.id)

        outcome = service.handle_confirmation(confirmation)

        assert outcome.ledger_posting_id is not None
        assert SyncQueueService(session, clock).get_job_for_payment(confirmation.payment_id) is None

    def test_repeated_confirmation_posts_once(self, service, session, clock, make_payment, org_id):
        payment = make_payment(org_id)
        confirmation = _confirmation(org_id, clock, payment_id=payment.id)

        first = service.handle_confirmation(confirmation)
        second = service.handle_confirmation(confirmation)

        assert first.ledger_posting_id == second.ledger_posting_id
        check = LedgerSelector(session).check_payment_balance(confirmation.payment_id)
        assert check.total_debits == Decimal("100.00")
