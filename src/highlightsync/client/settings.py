"""Persisted sync settings.

This module provides:
- SyncSettings: The single process-wide settings document
- merge_settings: Three-way merge used when several processes share the file
- SettingsStore: JSON-backed owner of SyncSettings with explicit saves

Architecture:
    Every component receives the same SettingsStore. Components mutate
    ``store.settings`` while holding ``store.lock`` and call ``store.save()``
    before reporting anything externally, so the file on disk never lags
    behind what the user has been told. Saves merge with the file under a
    file lock (filelock), so a daemon and one-shot commands can share it.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from filelock import FileLock

logger = logging.getLogger(__name__)

DEFAULT_BASE_DIRECTORY = "Readwise"


def normalize_base_directory(value: str | None) -> str:
    """Normalize a vault-relative directory (no leading/trailing slash).

    Args:
        value: User supplied directory, may be empty.

    Returns:
        Normalized directory, ``Readwise`` when empty.
    """
    parts = [p for p in (value or "").replace("\\", "/").split("/") if p and p != "."]
    return "/".join(parts) or DEFAULT_BASE_DIRECTORY


@dataclass
class SyncSettings:
    """Sync settings document.

    Attributes:
        token: Bearer credential, empty until authenticated.
        client_id: Stable random identifier for handshake and request tagging.
        base_directory: Vault-relative root of all synced files.
        vault_path: Absolute path of the vault on disk (empty = CLI default).
        is_syncing: Mutex flag, true while a cycle is in flight.
        current_job_id: Export job being awaited, 0 when idle.
        last_completed_job_id: Highest export job applied locally.
        last_sync_failed: Whether the last cycle ended in failure.
        auto_sync_on_start: Run a sync when the agent starts.
        auto_refresh_deleted_files: Ask the server to rebuild deleted files.
        interval_minutes: Scheduled sync interval, 0 = manual only.
        pending_refresh_ids: Record ids awaiting a server refresh.
        path_to_record_id: Vault path of each synced file -> record id.
        reimport_show_confirmation: Ask before deleting a file for reimport.
    """

    token: str = ""
    client_id: str = ""
    base_directory: str = DEFAULT_BASE_DIRECTORY
    vault_path: str = ""
    is_syncing: bool = False
    current_job_id: int = 0
    last_completed_job_id: int = 0
    last_sync_failed: bool = False
    auto_sync_on_start: bool = True
    auto_refresh_deleted_files: bool = False
    interval_minutes: int = 0
    pending_refresh_ids: list[str] = field(default_factory=list)
    path_to_record_id: dict[str, str] = field(default_factory=dict)
    reimport_show_confirmation: bool = True

    def __post_init__(self) -> None:
        """Normalize fields loaded from disk."""
        self.base_directory = normalize_base_directory(self.base_directory)
        self.pending_refresh_ids = list(dict.fromkeys(str(i) for i in self.pending_refresh_ids))
        self.path_to_record_id = {str(k): str(v) for k, v in self.path_to_record_id.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSettings:
        """Create from a stored dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return asdict(self)

    @property
    def is_authenticated(self) -> bool:
        """Check if a credential is stored."""
        return bool(self.token)

    def advance_completed_job(self, job_id: int) -> None:
        """Record a completed export job; never moves backwards."""
        if job_id > self.last_completed_job_id:
            self.last_completed_job_id = job_id

    def clear_run(self) -> None:
        """Reset the in-flight cycle markers."""
        self.is_syncing = False
        self.current_job_id = 0


def _merge_ids(base: list[str], ours: list[str], theirs: list[str]) -> list[str]:
    """Apply our additions and removals to the queue found on disk."""
    removed = set(base) - set(ours)
    merged = [i for i in theirs if i not in removed]
    merged.extend(i for i in ours if i not in base and i not in merged)
    return merged


def _merge_index(
    base: dict[str, str], ours: dict[str, str], theirs: dict[str, str]
) -> dict[str, str]:
    """Apply our changed and removed index keys to the index found on disk."""
    merged = {k: v for k, v in theirs.items() if k not in base or k in ours}
    merged.update({k: v for k, v in ours.items() if base.get(k) != v})
    return merged


def merge_settings(
    base: dict[str, Any], ours: dict[str, Any], theirs: dict[str, Any]
) -> dict[str, Any]:
    """Three-way merge of a settings document.

    Fields this process changed since ``base`` win; every other field
    keeps the value another process wrote to disk. The refresh queue and
    the path index merge per entry, and ``last_completed_job_id`` takes
    the larger value.

    Args:
        base: Document as last read from or written to disk by this process.
        ours: Document held in memory.
        theirs: Document currently on disk.

    Returns:
        Merged document.
    """
    merged = dict(theirs)
    for key, value in ours.items():
        if key == "pending_refresh_ids":
            merged[key] = _merge_ids(base.get(key, []), value, theirs.get(key, []))
        elif key == "path_to_record_id":
            merged[key] = _merge_index(base.get(key, {}), value, theirs.get(key, {}))
        elif key not in base or base[key] != value:
            merged[key] = value
    merged["last_completed_job_id"] = max(
        ours.get("last_completed_job_id", 0), theirs.get("last_completed_job_id", 0)
    )
    return merged


class SettingsStore:
    """JSON file holding SyncSettings.

    The store is the only shared mutable state in the agent. Access from
    scheduler, watcher and CLI threads is serialized by ``lock``. Several
    processes (a running daemon and one-shot commands) may share the file:
    writes happen under a file lock and merge with what is on disk, so a
    save never reverts another process's changes.
    """

    def __init__(self, path: Path, settings: SyncSettings | None = None) -> None:
        """Initialize the store.

        Args:
            path: Path of the settings JSON file.
            settings: Preloaded settings (mainly for tests); loaded from disk otherwise.
                Every field of preloaded settings counts as changed on the first save.
        """
        self._path = Path(path)
        self.lock = threading.RLock()
        self._file_lock = FileLock(self._path.with_name(self._path.name + ".lock"), timeout=10)
        if settings is not None:
            self.settings = settings
            self._baseline: dict[str, Any] = {}
        else:
            self.settings = self._load()
            self._baseline = self.settings.to_dict()

    @property
    def path(self) -> Path:
        """Get the settings file path."""
        return self._path

    def _load(self) -> SyncSettings:
        """Load settings from disk, defaulting missing fields."""
        if not self._path.exists():
            return SyncSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Could not read settings from %s: %s", self._path, e)
            return SyncSettings()
        if not isinstance(data, dict):
            logger.error("Ignoring malformed settings file %s", self._path)
            return SyncSettings()
        return SyncSettings.from_dict(data)

    def _apply(self, data: dict[str, Any]) -> None:
        """Copy a document into the live settings object."""
        fresh = SyncSettings.from_dict(data)
        for f in fields(SyncSettings):
            setattr(self.settings, f.name, getattr(fresh, f.name))

    @contextmanager
    def locked(self) -> Iterator[SyncSettings]:
        """Hold the thread lock and the settings file lock.

        Use for read-modify-write sequences that must not interleave with
        other processes, e.g. the sync mutex check-and-set.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self.lock, self._file_lock:
            yield self.settings

    def reload(self) -> SyncSettings:
        """Re-read settings from disk, discarding unsaved changes."""
        with self.lock:
            self._apply(self._load().to_dict())
            self._baseline = self.settings.to_dict()
            return self.settings

    def refresh(self) -> SyncSettings:
        """Merge changes saved by other processes into memory.

        Unsaved changes made in this process are kept.
        """
        with self.locked():
            theirs = self._load().to_dict()
            self._apply(merge_settings(self._baseline, self.settings.to_dict(), theirs))
            self._baseline = theirs
            return self.settings

    def save(self) -> None:
        """Merge with the file on disk and write it atomically."""
        with self.locked():
            theirs = self._load().to_dict()
            merged = merge_settings(self._baseline, self.settings.to_dict(), theirs)
            payload = json.dumps(merged, indent=2, sort_keys=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self._path)
            self._apply(merged)
            self._baseline = self.settings.to_dict()
        logger.debug("Saved settings to %s", self._path)
