"""Export archive download and merge.

This module provides:
- parse_entry_name: Map an archive entry name to a vault path and record id
- ArchiveMerger: Downloads an export archive and merges it into the vault

Entries are merged one by one in archive order. A failing entry never
aborts the archive: its record id is queued for a server refresh so the
next cycle regenerates it.
"""

from __future__ import annotations

import io
import logging
import posixpath
import re
import zipfile
import zlib
from typing import TYPE_CHECKING

from highlightsync.client.sync.types import (
    ArchiveEntry,
    EntryFailure,
    MergeError,
    MergeResult,
)
from highlightsync.client.vault import normalize_path

if TYPE_CHECKING:
    from highlightsync.client.api import ExportClient
    from highlightsync.client.notices import Notifier
    from highlightsync.client.settings import SettingsStore
    from highlightsync.client.sync.refresh import RefreshQueue
    from highlightsync.client.vault import LocalVault

logger = logging.getLogger(__name__)

ARCHIVE_ROOT = "Readwise"
DEFAULT_EXTENSION = ".md"

_RECORD_SUFFIX = re.compile(r"^(?P<stem>.+)--(?P<record_id>\d+)(?P<rest>[^/]*)$")


def parse_entry_name(name: str, base_directory: str) -> ArchiveEntry:
    """Compute where an archive entry is written.

    The archive root segment is replaced by ``base_directory``. A file
    name of the form ``<stem>--<digits>[...]<ext>`` carries a record id
    and is written to ``<stem><ext>``, so every part of a record lands in
    the same file.

    Args:
        name: Entry name inside the archive.
        base_directory: Vault-relative base directory.

    Returns:
        ArchiveEntry describing the target.
    """
    parts = normalize_path(name).split("/")
    if parts and parts[0] == ARCHIVE_ROOT:
        parts = parts[1:]
    target = normalize_path("/".join([base_directory, *parts]))

    directory, file_name = posixpath.split(target)
    match = _RECORD_SUFFIX.match(file_name)
    if not match:
        return ArchiveEntry(name=name, target_path=target)

    ext = posixpath.splitext(match["rest"])[1] or DEFAULT_EXTENSION
    file_name = match["stem"] + ext
    target = posixpath.join(directory, file_name) if directory else file_name
    return ArchiveEntry(name=name, target_path=target, record_id=match["record_id"])


class ArchiveMerger:
    """Downloads export archives and merges them into the vault."""

    def __init__(
        self,
        client: ExportClient,
        store: SettingsStore,
        vault: LocalVault,
        refresh_queue: RefreshQueue,
        notifier: Notifier,
    ) -> None:
        """Initialize the merger.

        Args:
            client: Export service client.
            store: Settings store (index, refresh queue, job ids).
            vault: Local document store receiving the files.
            refresh_queue: Queue receiving ids of entries that failed.
            notifier: User notice dispatcher.
        """
        self._client = client
        self._store = store
        self._vault = vault
        self._refresh_queue = refresh_queue
        self._notifier = notifier

    def download_and_merge(self, job_id: int) -> MergeResult:
        """Download the archive of an export job and merge it.

        Args:
            job_id: Finished export job.

        Returns:
            MergeResult; ``skipped`` when the job was already applied.

        Raises:
            APIError: If the archive could not be downloaded.
            MergeError: If the body is not a readable archive.
        """
        if job_id <= self._store.settings.last_completed_job_id:
            logger.info("Already saved data from export %d", job_id)
            return MergeResult(job_id=job_id, skipped=True)

        data = self._client.download_artifact(job_id)
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise MergeError(f"Export {job_id} is not a valid archive: {e}") from e

        result = MergeResult(job_id=job_id)
        self._notifier.progress("Saving files...")
        with archive:
            for info in archive.infolist():
                self._merge_entry(archive, info, result)

        logger.info(
            "Merged export %d: %d written, %d failed",
            job_id,
            len(result.written),
            len(result.failed),
        )
        return result

    def _merge_entry(
        self,
        archive: zipfile.ZipFile,
        info: zipfile.ZipInfo,
        result: MergeResult,
    ) -> None:
        """Merge a single archive entry, isolating its failures."""
        entry = parse_entry_name(info.filename, self._store.settings.base_directory)
        try:
            if info.is_dir():
                self._vault.mkdir(entry.target_path)
                return

            directory = posixpath.dirname(entry.target_path)
            if directory and not self._vault.exists(directory):
                self._vault.mkdir(directory)

            content = archive.read(info).decode("utf-8")
            if self._vault.exists(entry.target_path):
                # Later parts of a record and new highlights extend the file
                content = self._vault.read(entry.target_path) + content
            self._vault.write(entry.target_path, content)
        except (
            OSError,
            UnicodeDecodeError,
            ValueError,
            zipfile.BadZipFile,
            zlib.error,
            RuntimeError,
            NotImplementedError,
        ) as e:
            # Corrupt, encrypted or unsupported entries fail alone
            logger.error("Error writing %s: %s", entry.target_path, e)
            self._notifier.error(f"Error while writing {entry.target_path}: {e}")
            result.failed.append(
                EntryFailure(path=entry.target_path, error=str(e), record_id=entry.record_id)
            )
            if entry.record_id:
                self._refresh_queue.enqueue(entry.record_id)
            return

        with self._store.lock:
            settings = self._store.settings
            if entry.record_id:
                settings.path_to_record_id[entry.target_path] = entry.record_id
                if entry.record_id in settings.pending_refresh_ids:
                    settings.pending_refresh_ids.remove(entry.record_id)
            self._store.save()
        result.written.append(entry.target_path)
        logger.debug("Wrote %s", entry.target_path)
