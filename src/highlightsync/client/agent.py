"""Composition root wiring the sync components together.

Usage:
    store = SettingsStore(config_dir / "settings.json")
    with SyncAgent(store, LocalVault(vault_root)) as agent:
        outcome = agent.export_sync.start_sync()
"""

from __future__ import annotations

import logging
import threading

from highlightsync.client.api import ExportClient
from highlightsync.client.auth import TokenManager
from highlightsync.client.notices import Notifier
from highlightsync.client.scheduler import SyncScheduler
from highlightsync.client.settings import SettingsStore
from highlightsync.client.sync.archive import ArchiveMerger
from highlightsync.client.sync.export import ExportSync
from highlightsync.client.sync.reconciler import LocalEventReconciler
from highlightsync.client.sync.refresh import RefreshBatcher, RefreshQueue
from highlightsync.client.sync.watcher import VaultWatcher
from highlightsync.client.vault import LocalVault
from highlightsync.core.config import ServerConfig

logger = logging.getLogger(__name__)


class SyncAgent:
    """Owns every sync component for one vault."""

    def __init__(
        self,
        store: SettingsStore,
        vault: LocalVault,
        server_config: ServerConfig | None = None,
        client: ExportClient | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        """Build the component graph.

        Args:
            store: Settings store shared by all components.
            vault: Local document store.
            server_config: Export service settings (defaults apply if omitted).
            client: Preconfigured client (tests); built from server_config otherwise.
            notifier: Notice dispatcher (a fresh one if omitted).
        """
        self.store = store
        self.vault = vault
        self.notifier = notifier or Notifier()
        self.cancel_event = threading.Event()

        settings = store.settings
        self.client = client or ExportClient(server_config or ServerConfig())
        self.token_manager = TokenManager(self.client, store, cancel_event=self.cancel_event)
        self.client.set_credentials(settings.token, self.token_manager.get_client_id())

        self.refresh_queue = RefreshQueue(self.client, store)
        self.batcher = RefreshBatcher(self.refresh_queue)
        self.merger = ArchiveMerger(self.client, store, vault, self.refresh_queue, self.notifier)
        self.export_sync = ExportSync(
            self.client,
            store,
            vault,
            self.merger,
            self.refresh_queue,
            self.notifier,
            cancel_event=self.cancel_event,
        )
        self.reconciler = LocalEventReconciler(store, self.refresh_queue, self.batcher)
        self.watcher = VaultWatcher(vault, self.reconciler)
        self.scheduler = SyncScheduler(self.export_sync, store, self.refresh_queue, self.batcher)

    def start(self) -> None:
        """Start watching the vault and scheduling syncs.

        The agent can be started again after stop(); a cancellation left
        over from the previous stop is cleared first.
        """
        self.cancel_event.clear()
        self.watcher.start()
        self.scheduler.start()

    def stop(self) -> None:
        """Stop background activity and abort any wait in progress."""
        self.scheduler.stop()
        self.watcher.stop()

    def close(self) -> None:
        """Stop background activity and close the client."""
        self.stop()
        self.client.close()

    def set_interval(self, minutes: int) -> None:
        """Change the sync interval and reinstall the job."""
        with self.store.lock:
            self.store.settings.interval_minutes = max(0, minutes)
            self.store.save()
        self.scheduler.reschedule(self.store.settings.interval_minutes)

    def __enter__(self) -> SyncAgent:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
