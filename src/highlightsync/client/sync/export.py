"""Export synchronization state machine.

This module provides:
- ExportSync: Requests an export, polls it, merges the archive

State machine:
    IDLE -> REQUESTING -> POLLING -> DOWNLOADING -> IDLE
                  \\           \\            \\
                   +-----------+------------+--> FAILED

The ``is_syncing`` settings flag is the cross-cycle mutex: a cycle
started while another is in flight is rejected, never queued. Every
terminal transition clears the flag and ``current_job_id``. Waiting
between status polls happens on a cancellation event so shutdown never
leaves a poll loop behind; a cancelled cycle keeps its job id persisted
and is resumed on the next start.

Across processes the flag alone cannot tell a running cycle from one
whose process died, so every cycle also holds a file lock next to the
settings file. recover() only touches the flag when that lock is free.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from filelock import FileLock, Timeout

from highlightsync.client.api import APIError
from highlightsync.client.sync.types import (
    MergeError,
    MergeResult,
    SyncCancelledError,
    SyncOutcome,
    SyncStatus,
)
from highlightsync.client.vault import normalize_path
from highlightsync.core.types import ExportState, TaskStatus, classify_task_status

if TYPE_CHECKING:
    from highlightsync.client.api import ExportClient
    from highlightsync.client.notices import Notifier
    from highlightsync.client.settings import SettingsStore
    from highlightsync.client.sync.archive import ArchiveMerger
    from highlightsync.client.sync.refresh import RefreshQueue
    from highlightsync.client.vault import LocalVault

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0  # seconds between export status checks


class ExportSync:
    """Runs export sync cycles against the export service."""

    def __init__(
        self,
        client: ExportClient,
        store: SettingsStore,
        vault: LocalVault,
        merger: ArchiveMerger,
        refresh_queue: RefreshQueue,
        notifier: Notifier,
        poll_interval: float = POLL_INTERVAL,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Initialize the state machine.

        Args:
            client: Export service client.
            store: Settings store (mutex, job ids).
            vault: Local document store.
            merger: Archive download and merge engine.
            refresh_queue: Queue flushed before each export request.
            notifier: User notice dispatcher.
            poll_interval: Seconds between status polls.
            cancel_event: Event that aborts polling when set.
        """
        self._client = client
        self._store = store
        self._vault = vault
        self._merger = merger
        self._refresh_queue = refresh_queue
        self._notifier = notifier
        self._poll_interval = poll_interval
        self._cancel = cancel_event or threading.Event()
        self._state = ExportState.IDLE
        self._run_lock = FileLock(
            store.path.with_name(store.path.name + ".sync.lock"), thread_local=True
        )

    @property
    def state(self) -> ExportState:
        """Get the current state machine state."""
        return self._state

    def cancel(self) -> None:
        """Abort any wait in progress."""
        self._cancel.set()

    # === Entry points ===

    def _acquire_run_lock(self) -> bool:
        """Take the per-process cycle lock without waiting."""
        self._store.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._run_lock.acquire(timeout=0)
        except Timeout:
            return False
        return True

    def _already_running(self) -> SyncOutcome:
        self._notifier.notify("Sync already in progress")
        return SyncOutcome(SyncStatus.ALREADY_RUNNING, "Sync already in progress")

    def start_sync(self, auto: bool = False) -> SyncOutcome:
        """Start a sync cycle unless one is already running.

        Args:
            auto: Whether the cycle was triggered by the scheduler.

        Returns:
            SyncOutcome describing how the cycle ended.
        """
        if not self._acquire_run_lock():
            return self._already_running()
        try:
            with self._store.locked() as settings:
                self._store.refresh()
                if settings.is_syncing:
                    return self._already_running()
                settings.is_syncing = True
                self._store.save()

            logger.info("Started sync%s", " (scheduled)" if auto else "")
            return self._run(lambda: self._request_export(auto))
        finally:
            self._run_lock.release()

    def resume(self) -> SyncOutcome:
        """Resume polling the job left in flight by a previous run."""
        if not self._acquire_run_lock():
            return self._already_running()
        try:
            settings = self._store.settings
            job_id = settings.current_job_id
            if not settings.is_syncing or not job_id:
                return SyncOutcome(SyncStatus.UP_TO_DATE, "Nothing to resume")
            logger.info("Resuming export %d", job_id)
            return self._run(lambda: self._poll_status(job_id))
        finally:
            self._run_lock.release()

    def recover(self) -> SyncOutcome | None:
        """Handle a cycle left behind by an interrupted or crashed process.

        A flag with a job id is resumed; a flag without one is cleared.
        Nothing happens while a live process holds the cycle lock.

        Returns:
            Outcome of the resumed cycle, or None if nothing was resumed.
        """
        if not self._acquire_run_lock():
            logger.debug("Sync cycle owned by a running process, nothing to recover")
            return None
        try:
            with self._store.locked() as settings:
                self._store.refresh()
                if not settings.is_syncing:
                    return None
                if not settings.current_job_id:
                    logger.warning("Clearing orphaned sync flag from previous run")
                    settings.is_syncing = False
                    self._store.save()
                    return None
            logger.info("Found interrupted export %d", settings.current_job_id)
            return self.resume()
        finally:
            self._run_lock.release()

    def reimport(self, path: str) -> SyncOutcome:
        """Delete a synced file and have the server export it again.

        Args:
            path: Vault-relative path of a synced file.

        Returns:
            SyncOutcome of the follow-up sync, or FAILED if the refresh
            request was rejected.

        Raises:
            KeyError: If the path is not a synced file.
        """
        path = normalize_path(path)
        record_id = self._store.settings.path_to_record_id.get(path)
        if record_id is None:
            raise KeyError(path)

        if not self._refresh_queue.flush([record_id], requeue=False):
            self._notifier.error("Failed to reimport. Please try again")
            return SyncOutcome(SyncStatus.FAILED, "Failed to reimport. Please try again")

        with self._store.lock:
            self._store.settings.path_to_record_id.pop(path, None)
            self._store.save()
        try:
            self._vault.delete(path)
        except FileNotFoundError:
            logger.debug("%s was already gone", path)
        return self.start_sync()

    # === States ===

    def _run(self, step: Callable[[], SyncOutcome]) -> SyncOutcome:
        try:
            return step()
        except SyncCancelledError:
            self._state = ExportState.IDLE
            logger.info("Sync cancelled, export %d will resume on next start",
                        self._store.settings.current_job_id)
            return SyncOutcome(SyncStatus.CANCELLED, "Sync cancelled")
        except Exception as e:
            logger.exception("Unexpected error during sync")
            return self._fail(f"Sync failed: {e}")

    def _request_export(self, auto: bool) -> SyncOutcome:
        self._state = ExportState.REQUESTING
        self._refresh_queue.flush()

        base_directory = self._store.settings.base_directory
        parent_deleted = not self._vault.exists(base_directory)
        try:
            request = self._client.request_export(parent_deleted, auto=auto)
        except APIError as e:
            return self._fail(str(e))

        if request.job_id <= self._store.settings.last_completed_job_id:
            return self._succeed("Data is already up to date", SyncStatus.UP_TO_DATE)

        with self._store.lock:
            self._store.settings.current_job_id = request.job_id
            self._store.save()

        if request.created:
            self._notifier.progress("Syncing data")
            return self._poll_status(request.job_id)

        return self._succeed(
            "Latest sync already happened on your other device. Data should be up to date",
            SyncStatus.UP_TO_DATE,
            job_id=request.job_id,
        )

    def _poll_status(self, job_id: int) -> SyncOutcome:
        self._state = ExportState.POLLING
        while True:
            try:
                status = self._client.get_export_status(job_id)
            except APIError as e:
                return self._fail(str(e), job_id)

            bucket = classify_task_status(status.taskStatus)
            if bucket == TaskStatus.SUCCESS:
                return self._download(job_id)
            if bucket == TaskStatus.FAILURE:
                logger.warning("Export %d ended with status %s", job_id, status.taskStatus)
                return self._fail("Sync failed", job_id)

            if status.booksExported:
                self._notifier.progress(
                    f"Exporting data ({status.booksExported} / {status.totalBooks}) ..."
                )
            else:
                self._notifier.progress("Building export...")
            if self._cancel.wait(self._poll_interval):
                raise SyncCancelledError(f"Cancelled while waiting for export {job_id}")

    def _download(self, job_id: int) -> SyncOutcome:
        self._state = ExportState.DOWNLOADING
        try:
            merge = self._merger.download_and_merge(job_id)
        except (APIError, MergeError) as e:
            return self._fail(str(e), job_id)

        if merge.skipped:
            return self._succeed("Data is already up to date", SyncStatus.UP_TO_DATE, merge=merge)

        self._acknowledge()
        return self._succeed("Sync completed", SyncStatus.SUCCESS, job_id=job_id, merge=merge)

    def _acknowledge(self) -> None:
        try:
            self._client.acknowledge_sync()
        except APIError as e:
            logger.warning("Could not acknowledge completed sync: %s", e)

    # === Terminal transitions ===

    def _succeed(
        self,
        message: str,
        status: SyncStatus,
        job_id: int | None = None,
        merge: MergeResult | None = None,
    ) -> SyncOutcome:
        with self._store.lock:
            settings = self._store.settings
            settings.clear_run()
            settings.last_sync_failed = False
            if job_id:
                settings.advance_completed_job(job_id)
            self._store.save()
        self._state = ExportState.IDLE
        self._notifier.success(message)
        return SyncOutcome(status, message, job_id=job_id, merge=merge)

    def _fail(self, message: str, job_id: int | None = None) -> SyncOutcome:
        with self._store.lock:
            settings = self._store.settings
            settings.clear_run()
            settings.last_sync_failed = True
            self._store.save()
        self._state = ExportState.FAILED
        self._notifier.error(message)
        return SyncOutcome(SyncStatus.FAILED, message, job_id=job_id)
