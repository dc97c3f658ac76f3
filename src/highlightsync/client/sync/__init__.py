"""Export sync operations.

Architecture:
    ExportSync → ArchiveMerger → LocalVault
    VaultWatcher → LocalEventReconciler → RefreshQueue

Components:
- **ExportSync**: Request/poll state machine for export jobs
- **ArchiveMerger**: Downloads an archive and merges entries into the vault
- **RefreshQueue / RefreshBatcher**: Records to regenerate, debounced flush
- **LocalEventReconciler**: Applies local renames/deletes to the index
- **VaultWatcher**: Watchdog observer feeding the reconciler
"""

from highlightsync.client.sync.archive import ArchiveMerger, parse_entry_name
from highlightsync.client.sync.export import POLL_INTERVAL, ExportSync
from highlightsync.client.sync.reconciler import LocalEventReconciler
from highlightsync.client.sync.refresh import RefreshBatcher, RefreshQueue
from highlightsync.client.sync.types import (
    ArchiveEntry,
    EntryFailure,
    MergeError,
    MergeResult,
    SyncCancelledError,
    SyncError,
    SyncOutcome,
    SyncStatus,
)
from highlightsync.client.sync.watcher import VaultEventHandler, VaultWatcher

__all__ = [
    "POLL_INTERVAL",
    "ArchiveEntry",
    "ArchiveMerger",
    "EntryFailure",
    "ExportSync",
    "LocalEventReconciler",
    "MergeError",
    "MergeResult",
    "RefreshBatcher",
    "RefreshQueue",
    "SyncCancelledError",
    "SyncError",
    "SyncOutcome",
    "SyncStatus",
    "VaultEventHandler",
    "VaultWatcher",
    "parse_entry_name",
]
