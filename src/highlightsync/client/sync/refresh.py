"""Refresh queue for records whose local files are gone.

This module provides:
- RefreshQueue: Persistent, deduplicated set of record ids to regenerate
- RefreshBatcher: Coalesces bursts of flush requests into one call

Delivery is at-least-once: ids leave the queue only after the server
accepted them.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Protocol

from highlightsync.client.api import APIError, ExportClient
from highlightsync.client.settings import SettingsStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_DELAY = 1.0  # seconds


class RefreshQueue:
    """Queue of record ids awaiting a server-side refresh."""

    def __init__(self, client: ExportClient, store: SettingsStore) -> None:
        """Initialize the refresh queue.

        Args:
            client: Export service client.
            store: Settings store holding ``pending_refresh_ids``.
        """
        self._client = client
        self._store = store
        self._flush_lock = threading.Lock()

    @property
    def pending(self) -> list[str]:
        """Get a snapshot of the queued ids."""
        with self._store.lock:
            return list(self._store.settings.pending_refresh_ids)

    def __len__(self) -> int:
        return len(self.pending)

    def enqueue(self, record_id: str) -> bool:
        """Queue a record id.

        Returns:
            True if the id was added, False if it was already queued.
        """
        with self._store.lock:
            pending = self._store.settings.pending_refresh_ids
            if record_id in pending:
                return False
            pending.append(record_id)
            self._store.save()
        logger.info("Queued record %s for refresh", record_id)
        return True

    def discard(self, record_ids: Iterable[str]) -> None:
        """Remove ids from the queue (no-op for ids not queued)."""
        drop = set(record_ids)
        with self._store.lock:
            settings = self._store.settings
            remaining = [i for i in settings.pending_refresh_ids if i not in drop]
            if len(remaining) != len(settings.pending_refresh_ids):
                settings.pending_refresh_ids = remaining
                self._store.save()

    def flush(self, record_ids: Iterable[str] | None = None, requeue: bool = True) -> bool:
        """Ask the server to regenerate records.

        Args:
            record_ids: Ids to send (default: every queued id).
            requeue: Keep rejected ids queued for a later flush.

        Returns:
            True if the server accepted the ids (or there was nothing to send).
        """
        with self._flush_lock:
            ids = list(dict.fromkeys(record_ids)) if record_ids is not None else self.pending
            if not ids:
                return True

            try:
                self._client.refresh_records(ids)
            except APIError as e:
                if not requeue:
                    logger.warning("Refresh of %d record(s) failed: %s", len(ids), e)
                    return False
                logger.warning("Refresh of %d record(s) failed, keeping them queued: %s", len(ids), e)
                with self._store.lock:
                    pending = self._store.settings.pending_refresh_ids
                    pending.extend(i for i in ids if i not in pending)
                    self._store.save()
                return False

            self.discard(ids)
            logger.info("Requested refresh of %d record(s)", len(ids))
            return True


class TimerLike(Protocol):
    """Subset of threading.Timer used by RefreshBatcher."""

    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerLike]


class RefreshBatcher:
    """Debounces refresh flushes.

    Every ``schedule()`` restarts a short timer; when it fires, the queue
    is flushed once. A burst of N deletions therefore costs one request.
    """

    def __init__(
        self,
        queue: RefreshQueue,
        delay: float = DEFAULT_BATCH_DELAY,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        """Initialize the batcher.

        Args:
            queue: Refresh queue to flush.
            delay: Quiet period before flushing, in seconds.
            timer_factory: Creates the timer (threading.Timer signature).
        """
        self._queue = queue
        self._delay = delay
        self._timer_factory = timer_factory
        self._timer: TimerLike | None = None
        self._lock = threading.Lock()

    @property
    def is_pending(self) -> bool:
        """Check if a flush is scheduled."""
        return self._timer is not None

    def schedule(self) -> None:
        """Schedule a flush after the quiet period."""
        with self._lock:
            if self._timer:
                self._timer.cancel()
            self._timer = self._timer_factory(self._delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        try:
            self._queue.flush()
        except Exception:
            logger.exception("Scheduled refresh flush failed")

    def flush_now(self) -> bool:
        """Cancel any scheduled flush and flush immediately."""
        self.cancel()
        return self._queue.flush()

    def cancel(self) -> None:
        """Cancel the scheduled flush."""
        with self._lock:
            if self._timer:
                self._timer.cancel()
                self._timer = None
