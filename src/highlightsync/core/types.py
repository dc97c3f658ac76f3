"""Shared types for highlightsync.

This module defines the export state machine states and the
classification of remote task statuses.
"""

from __future__ import annotations

from enum import Enum


class ExportState(str, Enum):
    """State of the export synchronization state machine."""

    IDLE = "idle"
    REQUESTING = "requesting"
    POLLING = "polling"
    DOWNLOADING = "downloading"
    FAILED = "failed"


class TaskStatus(str, Enum):
    """Bucket a remote export task status falls into."""

    WAITING = "waiting"
    SUCCESS = "success"
    FAILURE = "failure"


WAITING_STATUSES = frozenset({"PENDING", "RECEIVED", "STARTED", "RETRY"})
SUCCESS_STATUSES = frozenset({"SUCCESS"})


def classify_task_status(task_status: str | None) -> TaskStatus:
    """Classify a remote ``taskStatus`` value.

    Unknown and missing values are terminal failures.
    """
    if task_status in WAITING_STATUSES:
        return TaskStatus.WAITING
    if task_status in SUCCESS_STATUSES:
        return TaskStatus.SUCCESS
    return TaskStatus.FAILURE
