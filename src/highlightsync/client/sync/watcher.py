"""Vault watcher feeding local delete/rename events to the reconciler.

This module provides:
- VaultEventHandler: Translates watchdog events into reconciler calls
- VaultWatcher: Watches the vault directory using watchdog
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    DirDeletedEvent,
    DirMovedEvent,
    FileDeletedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

    from highlightsync.client.sync.reconciler import LocalEventReconciler
    from highlightsync.client.vault import LocalVault

logger = logging.getLogger(__name__)


def _decode(path: str | bytes) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return path


class VaultEventHandler(FileSystemEventHandler):
    """Forwards deletes and moves inside the vault to the reconciler."""

    def __init__(self, vault: LocalVault, reconciler: LocalEventReconciler) -> None:
        super().__init__()
        self._vault = vault
        self._reconciler = reconciler

    def _relative(self, path: str | bytes) -> str | None:
        rel = self._vault.relative(_decode(path))
        if not rel:
            logger.debug("Ignoring event outside vault: %s", path)
        return rel

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle deleted event."""
        if not isinstance(event, FileDeletedEvent | DirDeletedEvent):
            return
        rel = self._relative(event.src_path)
        if rel:
            self._reconciler.on_deleted(rel)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle moved event."""
        if not isinstance(event, FileMovedEvent | DirMovedEvent):
            return
        old = self._relative(event.src_path)
        if not old:
            return
        new = self._relative(event.dest_path)
        if new:
            self._reconciler.on_renamed(old, new)
        else:
            # Moved out of the vault: same as a delete from our point of view
            self._reconciler.on_deleted(old)


class VaultWatcher:
    """Watches the vault directory for deletes and renames."""

    def __init__(self, vault: LocalVault, reconciler: LocalEventReconciler) -> None:
        """Initialize the watcher.

        Args:
            vault: Vault whose root is watched recursively.
            reconciler: Receives delete/rename events.
        """
        self._vault = vault
        self._handler = VaultEventHandler(vault, reconciler)
        self._observer: BaseObserver | None = None

    @property
    def handler(self) -> VaultEventHandler:
        """Get the event handler."""
        return self._handler

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._observer is not None

    def start(self) -> None:
        """Start watching for changes."""
        if self._observer is not None:
            return
        root: Path = self._vault.root
        root.mkdir(parents=True, exist_ok=True)
        self._observer = Observer()
        self._observer.schedule(self._handler, str(root), recursive=True)
        self._observer.start()
        logger.info("Watching %s", root)

    def stop(self) -> None:
        """Stop watching for changes."""
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None

    def __enter__(self) -> VaultWatcher:
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()
