"""Scheduler for automatic sync cycles.

This module provides:
- SyncScheduler: Interval sync job, startup sync and crash recovery

Manual syncing is the default (interval 0). The interval job is
replaced whenever the user changes the setting.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from highlightsync.client.settings import SettingsStore
    from highlightsync.client.sync.export import ExportSync
    from highlightsync.client.sync.refresh import RefreshBatcher, RefreshQueue
    from highlightsync.client.sync.types import SyncOutcome

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "export_sync"
STARTUP_JOB_ID = "startup_sync"
RECOVERY_JOB_ID = "startup_recovery"
DEFAULT_STARTUP_DELAY = 2.0  # seconds


class SyncScheduler:
    """Runs sync cycles on an interval and at startup."""

    def __init__(
        self,
        export_sync: ExportSync,
        store: SettingsStore,
        refresh_queue: RefreshQueue,
        batcher: RefreshBatcher | None = None,
        startup_delay: float = DEFAULT_STARTUP_DELAY,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            export_sync: State machine running the cycles.
            store: Settings store (interval, startup flags, recovery state).
            refresh_queue: Queue flushed at startup.
            batcher: Debounced flusher cancelled on stop.
            startup_delay: Seconds to wait before the startup sync.
            scheduler: APScheduler instance (created if omitted).
        """
        self._export_sync = export_sync
        self._store = store
        self._refresh_queue = refresh_queue
        self._batcher = batcher
        self._startup_delay = startup_delay
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or BackgroundScheduler()
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the scheduler has been started."""
        return self._running

    @property
    def interval_minutes(self) -> int:
        """Get the interval of the installed sync job (0 = manual)."""
        job = self._scheduler.get_job(SYNC_JOB_ID)
        if job is None:
            return 0
        return int(job.trigger.interval.total_seconds() // 60)

    def _scheduled_sync(self) -> None:
        """Job function for scheduled syncs."""
        try:
            outcome = self._export_sync.start_sync(auto=True)
            logger.info("Scheduled sync finished: %s", outcome.status.value)
        except Exception:
            logger.exception("Error during scheduled sync")

    def reschedule(self, minutes: int) -> None:
        """Replace the interval sync job.

        Args:
            minutes: Interval in minutes; 0 removes the job (manual mode).
        """
        try:
            self._scheduler.remove_job(SYNC_JOB_ID)
        except JobLookupError:
            pass

        if minutes <= 0:
            logger.info("Automatic sync disabled (manual mode)")
            return

        self._scheduler.add_job(
            self._scheduled_sync,
            trigger=IntervalTrigger(minutes=minutes),
            id=SYNC_JOB_ID,
            name="Periodic export sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Automatic sync every %d minute(s)", minutes)

    def recover(self) -> SyncOutcome | None:
        """Resume or clear an interrupted cycle, then flush pending refreshes.

        Returns:
            Outcome of the resumed cycle, or None if nothing was resumed.
        """
        try:
            outcome = self._export_sync.recover()
            self._refresh_queue.flush()
        except Exception:
            logger.exception("Error during startup recovery")
            return None
        return outcome

    def start(self) -> None:
        """Install the recovery, startup and interval jobs and start running them."""
        if self._running:
            return

        settings = self._store.settings
        self.reschedule(settings.interval_minutes)
        if settings.is_syncing or settings.pending_refresh_ids:
            self._scheduler.add_job(
                self.recover,
                trigger=DateTrigger(run_date=datetime.now()),
                id=RECOVERY_JOB_ID,
                name="Startup recovery",
                replace_existing=True,
            )
        if settings.is_authenticated and settings.auto_sync_on_start and not settings.is_syncing:
            self._scheduler.add_job(
                self._scheduled_sync,
                trigger=DateTrigger(
                    run_date=datetime.now() + timedelta(seconds=self._startup_delay)
                ),
                id=STARTUP_JOB_ID,
                name="Startup export sync",
                replace_existing=True,
            )

        self._scheduler.start()
        self._running = True
        logger.info("Sync scheduler started")

    def stop(self) -> None:
        """Stop the scheduler and abort any wait in progress."""
        self._export_sync.cancel()
        if self._batcher is not None:
            self._batcher.cancel()
        if self._running:
            self._scheduler.shutdown(wait=False)
            # A shut down scheduler keeps its closed thread pool
            if self._owns_scheduler:
                self._scheduler = BackgroundScheduler()
            self._running = False
            logger.info("Sync scheduler stopped")
