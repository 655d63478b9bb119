"""
Config -> service wiring.

Usage:
    from settlement_config import get_active_config
    from settlement_services.runtime import build_runtime

    runtime = build_runtime(get_active_config(), credentials=lookup_token)
    runtime.start()
    ...
    with runtime.session_scope() as session:
        runtime.confirmation_service(session).handle_confirmation(confirmation)
    ...
    runtime.stop()

The rate cache and the queue scheduler are created once here and passed
into the services that need them; nothing else holds them globally.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_config.schema import SettlementConfig
from settlement_kernel.db.engine import get_session_factory, init_engine_from_url
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.logging_config import configure_logging, get_logger

from settlement_fx.providers import build_providers
from settlement_fx.rate_cache import RateCache
from settlement_fx.rate_service import RateService
from settlement_fx.snapshot_service import FxSnapshotService
from settlement_sync.accounting.base import AccountingGateway
from settlement_sync.accounting.http import HttpAccountingGateway
from settlement_sync.accounting.memory import InMemoryAccountingGateway
from settlement_sync.domain.retry import RetrySchedule
from settlement_sync.services.processor import QueueProcessor
from settlement_sync.services.scheduler import SyncQueueScheduler

from settlement_services.confirmation import ConfirmationService
from settlement_services.reconciliation import ReconciliationReporter
from settlement_services.reporting import ReportingService

logger = get_logger("services.runtime")


@dataclass
class SettlementRuntime:
    config: SettlementConfig
    clock: Clock
    session_factory: Callable[[], Session]
    cache: RateCache
    rate_service: RateService
    gateway: AccountingGateway
    retry_schedule: RetrySchedule
    scheduler: SyncQueueScheduler | None = None

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def snapshot_service(self, session: Session) -> FxSnapshotService:
        return FxSnapshotService(session, self.rate_service, self.clock)

    def confirmation_service(self, session: Session) -> ConfirmationService:
        return ConfirmationService(
            session, self.snapshot_service(session), self.clock, self.retry_schedule
        )

    def processor(self, session: Session) -> QueueProcessor:
        queue_config = self.config.sync_queue
        return QueueProcessor(
            session,
            self.gateway,
            self.clock,
            retry_schedule=self.retry_schedule,
            batch_size=queue_config.batch_size,
            inter_job_delay_seconds=queue_config.inter_job_delay_seconds,
        )

    def reconciliation_reporter(self, session: Session) -> ReconciliationReporter:
        return ReconciliationReporter(
            session, self.clock, tolerance=self.config.reconciliation.tolerance
        )

    def reporting(self, session: Session) -> ReportingService:
        return ReportingService(session, self.clock)

    def start(self, *, prewarm: bool = True) -> None:
        """Start the cache sweep and the queue scheduler."""
        self.cache.start_cleanup(self.config.rate_cache.cleanup_interval_seconds)
        if prewarm:
            self.rate_service.prewarm()
        if self.scheduler is None:
            self.scheduler = SyncQueueScheduler(
                self.session_factory,
                self.processor,
                poll_interval_seconds=self.config.sync_queue.poll_interval_seconds,
                batch_size=self.config.sync_queue.batch_size,
            )
        self.scheduler.start()
        logger.info("settlement_runtime_started")

    def stop(self) -> None:
        """Stop background work, then release the HTTP clients."""
        if self.scheduler is not None:
            self.scheduler.stop()
        self.cache.stop_cleanup()
        self.gateway.close()
        self.rate_service.close()
        logger.info("settlement_runtime_stopped")


def build_runtime(
    config: SettlementConfig,
    *,
    clock: Clock | None = None,
    session_factory: Callable[[], Session] | None = None,
    gateway: AccountingGateway | None = None,
    credentials: Callable[[UUID], str | None] | None = None,
) -> SettlementRuntime:
    """
    Build every long-lived collaborator from configuration.

    Without an explicit gateway, an accounting base URL selects the HTTP
    gateway (``credentials`` then resolves each organization's bearer
    token); no base URL selects the in-memory gateway for local runs.
    """
    configure_logging(level=config.log_level)
    clock = clock or SystemClock()

    if session_factory is None:
        init_engine_from_url(config.database_url)
        session_factory = get_session_factory()

    cache = RateCache(config.rate_cache, clock)
    providers = build_providers(config.enabled_providers(), clock=clock)
    rate_service = RateService(providers, cache)

    if gateway is None:
        if config.accounting.base_url:
            gateway = HttpAccountingGateway(
                config.accounting.base_url,
                credentials or (lambda organization_id: None),
                timeout=config.accounting.timeout_seconds,
            )
        else:
            logger.warning("accounting_gateway_in_memory")
            gateway = InMemoryAccountingGateway()

    logger.info(
        "settlement_runtime_built",
        extra={
            "providers": [p.name for p in providers],
            "gateway": type(gateway).__name__,
        },
    )
    return SettlementRuntime(
        config=config,
        clock=clock,
        session_factory=session_factory,
        cache=cache,
        rate_service=rate_service,
        gateway=gateway,
        retry_schedule=RetrySchedule(config.sync_queue.retry_schedule_seconds),
    )
