"""Shared fixtures for highlightsync tests."""

from __future__ import annotations

import io
import threading
import zipfile
from collections.abc import Generator
from pathlib import Path

import pytest

from highlightsync.client.api import ExportClient
from highlightsync.client.notices import Notifier
from highlightsync.client.settings import SettingsStore, SyncSettings
from highlightsync.client.sync.archive import ArchiveMerger
from highlightsync.client.sync.export import ExportSync
from highlightsync.client.sync.refresh import RefreshQueue
from highlightsync.client.vault import LocalVault
from highlightsync.core.config import ServerConfig

SERVER_URL = "http://test"


def make_archive(entries: dict[str, str] | list[tuple[str, str]]) -> bytes:
    """Build a zip archive in memory, preserving entry order."""
    items = entries.items() if isinstance(entries, dict) else entries
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in items:
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def store(tmp_path: Path) -> SettingsStore:
    """Create a settings store with a credential."""
    s = SettingsStore(
        tmp_path / "config" / "settings.json",
        SyncSettings(token="secret-token", client_id="client-abc"),
    )
    s.save()
    return s


@pytest.fixture
def vault(tmp_path: Path) -> LocalVault:
    """Create an empty vault."""
    root = tmp_path / "vault"
    root.mkdir()
    return LocalVault(root)


@pytest.fixture
def client(store: SettingsStore) -> Generator[ExportClient, None, None]:
    """Create an export client pointing at the mock server."""
    c = ExportClient(
        ServerConfig(server_url=SERVER_URL),
        token=store.settings.token,
        client_id=store.settings.client_id,
    )
    yield c
    c.close()


@pytest.fixture
def notifier() -> Notifier:
    """Create a notifier."""
    return Notifier()


@pytest.fixture
def refresh_queue(client: ExportClient, store: SettingsStore) -> RefreshQueue:
    """Create a refresh queue."""
    return RefreshQueue(client, store)


@pytest.fixture
def merger(
    client: ExportClient,
    store: SettingsStore,
    vault: LocalVault,
    refresh_queue: RefreshQueue,
    notifier: Notifier,
) -> ArchiveMerger:
    """Create an archive merger."""
    return ArchiveMerger(client, store, vault, refresh_queue, notifier)


@pytest.fixture
def export_sync(
    client: ExportClient,
    store: SettingsStore,
    vault: LocalVault,
    merger: ArchiveMerger,
    refresh_queue: RefreshQueue,
    notifier: Notifier,
) -> ExportSync:
    """Create an export state machine that never sleeps."""
    return ExportSync(
        client,
        store,
        vault,
        merger,
        refresh_queue,
        notifier,
        poll_interval=0,
        cancel_event=threading.Event(),
    )


@pytest.fixture
def archive_factory():  # type: ignore[no-untyped-def]
    """Return the in-memory archive builder."""
    return make_archive
