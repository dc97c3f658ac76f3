"""User-facing notices for sync progress and errors.

This module provides:
- Notice: A message shown to the user
- Notifier: Fans notices out to listeners (CLI output, tray, tests)

Notices are also logged, so a headless agent still leaves a trail.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 100


class NoticeLevel(Enum):
    """Kind of notice."""

    PROGRESS = auto()
    INFO = auto()
    SUCCESS = auto()
    ERROR = auto()


@dataclass
class Notice:
    """A message for the user.

    Attributes:
        message: Text, truncated to MAX_MESSAGE_LENGTH.
        level: Kind of notice.
    """

    message: str
    level: NoticeLevel = NoticeLevel.INFO


NoticeListener = Callable[[Notice], None]

_LOG_LEVELS = {
    NoticeLevel.PROGRESS: logging.DEBUG,
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.SUCCESS: logging.INFO,
    NoticeLevel.ERROR: logging.ERROR,
}


class Notifier:
    """Dispatches notices to registered listeners.

    Repeated progress messages are collapsed so a long polling loop does
    not flood the listeners with the same line.
    """

    def __init__(self) -> None:
        self._listeners: list[NoticeListener] = []
        self._last_progress: str | None = None
        self._lock = threading.Lock()
        self.history: list[Notice] = []

    def subscribe(self, listener: NoticeListener) -> None:
        """Register a listener."""
        self._listeners.append(listener)

    def notify(self, message: str, level: NoticeLevel = NoticeLevel.INFO) -> None:
        """Send a notice to all listeners."""
        message = message[:MAX_MESSAGE_LENGTH]
        with self._lock:
            if level == NoticeLevel.PROGRESS:
                if message == self._last_progress:
                    return
                self._last_progress = message
            else:
                self._last_progress = None
            notice = Notice(message=message, level=level)
            self.history.append(notice)
            if len(self.history) > 50:
                del self.history[:-50]

        logger.log(_LOG_LEVELS[level], message)
        for listener in self._listeners:
            try:
                listener(notice)
            except Exception:
                logger.exception("Notice listener failed")

    def progress(self, message: str) -> None:
        """Send a transient progress notice."""
        self.notify(message, NoticeLevel.PROGRESS)

    def success(self, message: str) -> None:
        """Send a success notice."""
        self.notify(message, NoticeLevel.SUCCESS)

    def error(self, message: str) -> None:
        """Send an error notice."""
        self.notify(message, NoticeLevel.ERROR)
