"""
SyncQueueScheduler -- in-process polling driver for the sync queue.

Contract:
    ``tick()`` opens a session, runs one ``process_queue`` batch and closes
    the session.  ``start()`` / ``stop()`` run ticks on a background thread
    every ``poll_interval_seconds``; ``stop()`` lets the current job finish.

Non-goals:
    - NOT a distributed scheduler (no leader election).  Several processes
      may poll the same queue; the job claim is last-writer-wins.
"""

from __future__ import annotations

import threading
from typing import Callable

from sqlalchemy.orm import Session

from settlement_kernel.logging_config import get_logger

from settlement_sync.domain.types import ProcessQueueStats
from settlement_sync.services.processor import QueueProcessor

logger = get_logger("sync.scheduler")


class SyncQueueScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        processor_factory: Callable[[Session], QueueProcessor],
        poll_interval_seconds: float = 60,
        batch_size: int = 10,
    ):
        self._session_factory = session_factory
        self._processor_factory = processor_factory
        self._poll_interval = poll_interval_seconds
        self._batch_size = batch_size
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> ProcessQueueStats:
        """Process one batch (public for testing)."""
        session = self._session_factory()
        try:
            processor = self._processor_factory(session)
            stats = processor.process_queue(self._batch_size)
            session.commit()
            return stats
        except Exception:
            session.rollback()
            logger.exception("sync_scheduler_tick_failed")
            return ProcessQueueStats()
        finally:
            session.close()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="sync-queue-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("sync_scheduler_started", extra={"poll_interval": self._poll_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the running tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("sync_scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._poll_interval)
