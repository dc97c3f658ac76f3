"""Keeps the path -> record id index in step with local file events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from highlightsync.client.vault import normalize_path

if TYPE_CHECKING:
    from highlightsync.client.settings import SettingsStore
    from highlightsync.client.sync.refresh import RefreshBatcher, RefreshQueue

logger = logging.getLogger(__name__)


def _is_under(path: str, directory: str) -> bool:
    return path == directory or path.startswith(directory + "/")


class LocalEventReconciler:
    """Applies local rename and delete events to the sync bookkeeping.

    A rename moves index entries to the new path. A delete drops them and,
    when ``auto_refresh_deleted_files`` is on, queues the record ids so the
    server regenerates the files. Directory events apply to every tracked
    path below the directory.
    """

    def __init__(
        self,
        store: SettingsStore,
        refresh_queue: RefreshQueue,
        batcher: RefreshBatcher | None = None,
    ) -> None:
        self._store = store
        self._refresh_queue = refresh_queue
        self._batcher = batcher

    def on_renamed(self, old_path: str, new_path: str) -> bool:
        """Move index entries from ``old_path`` to ``new_path``.

        Returns:
            True if any tracked path was moved.
        """
        old_path = normalize_path(old_path)
        new_path = normalize_path(new_path)
        with self._store.lock:
            index = self._store.settings.path_to_record_id
            moved = {p: r for p, r in index.items() if _is_under(p, old_path)}
            if not moved:
                return False
            for path, record_id in moved.items():
                del index[path]
                index[new_path + path[len(old_path):]] = record_id
            self._store.save()
        logger.info("Tracked %d file(s) moved from %s to %s", len(moved), old_path, new_path)
        return True

    def on_deleted(self, path: str) -> list[str]:
        """Forget deleted files and queue their records for refresh.

        Returns:
            Record ids queued for refresh.
        """
        path = normalize_path(path)
        queued: list[str] = []
        with self._store.lock:
            settings = self._store.settings
            index = settings.path_to_record_id
            removed = {p: r for p, r in index.items() if _is_under(p, path)}
            if not removed:
                return queued
            for tracked in removed:
                del index[tracked]
            self._store.save()

            if settings.auto_refresh_deleted_files:
                for record_id in removed.values():
                    if self._refresh_queue.enqueue(record_id):
                        queued.append(record_id)

        logger.info("Tracked file(s) deleted under %s: %s", path, ", ".join(removed))
        if queued and self._batcher is not None:
            self._batcher.schedule()
        return queued
