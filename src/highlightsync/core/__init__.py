"""Core module - Shared configuration and types."""

from highlightsync.core.config import (
    DEFAULT_SERVER_URL,
    SERVER_URL_ENV,
    ServerConfig,
    default_server_url,
)
from highlightsync.core.types import (
    SUCCESS_STATUSES,
    WAITING_STATUSES,
    ExportState,
    TaskStatus,
    classify_task_status,
)

__all__ = [
    # Config
    "DEFAULT_SERVER_URL",
    "SERVER_URL_ENV",
    "ServerConfig",
    "default_server_url",
    # Types
    "ExportState",
    "SUCCESS_STATUSES",
    "TaskStatus",
    "WAITING_STATUSES",
    "classify_task_status",
]
