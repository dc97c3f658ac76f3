"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, MergeError, SyncCancelledError: Exception classes
- ArchiveEntry: Parsed archive entry name
- EntryFailure, MergeResult: Archive merge results
- SyncStatus, SyncOutcome: Result of one sync cycle
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SyncError(Exception):
    """Base exception for sync errors."""


class MergeError(SyncError):
    """The archive as a whole could not be merged."""


class SyncCancelledError(SyncError):
    """The cycle was cancelled while waiting (agent shutdown)."""


@dataclass(frozen=True)
class ArchiveEntry:
    """Where an archive entry lands in the vault.

    Attributes:
        name: Entry name inside the archive.
        target_path: Vault-relative path the content is written to.
        record_id: Server record id parsed from the name, if any.
    """

    name: str
    target_path: str
    record_id: str | None = None


@dataclass
class EntryFailure:
    """An archive entry that could not be written."""

    path: str
    error: str
    record_id: str | None = None


@dataclass
class MergeResult:
    """Result of downloading and merging one export archive.

    Attributes:
        job_id: Export job the archive belongs to.
        written: Vault paths written or appended to, in archive order.
        failed: Entries that could not be written.
        skipped: True when the job was already applied and nothing was fetched.
    """

    job_id: int
    written: list[str] = field(default_factory=list)
    failed: list[EntryFailure] = field(default_factory=list)
    skipped: bool = False


class SyncStatus(Enum):
    """Terminal result of a sync cycle."""

    SUCCESS = "success"
    UP_TO_DATE = "up_to_date"
    FAILED = "failed"
    ALREADY_RUNNING = "already_running"
    CANCELLED = "cancelled"


@dataclass
class SyncOutcome:
    """Result of one sync cycle.

    Attributes:
        status: How the cycle ended.
        message: Human readable summary.
        job_id: Export job involved, if any.
        merge: Merge result when an archive was applied.
    """

    status: SyncStatus
    message: str = ""
    job_id: int | None = None
    merge: MergeResult | None = None

    @property
    def ok(self) -> bool:
        """Check if the cycle left the vault up to date."""
        return self.status in (SyncStatus.SUCCESS, SyncStatus.UP_TO_DATE)
