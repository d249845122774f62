"""Status and progress sinks for long-running linking stages."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressLogger(Protocol):
    """Fire-and-forget status/progress reporting; must not block the caller."""

    def set_status(self, status: str) -> None:
        ...

    def set_progress(self, progress: float) -> None:
        ...


class NullProgress:
    """Discards every report."""

    def set_status(self, status: str) -> None:
        pass

    def set_progress(self, progress: float) -> None:
        pass


class LoggingProgress:
    """Forwards status to ``logging`` at INFO and progress at DEBUG.

    Progress is only logged when it crosses a whole percent, so frequent
    reports from many workers do not flood the log.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger
        self._lock = threading.Lock()
        self._last_percent = -1
        self.status = ""
        self.progress = 0.0

    def set_status(self, status: str) -> None:
        self.status = status
        if status:
            self._log.info(status)

    def set_progress(self, progress: float) -> None:
        progress = min(max(float(progress), 0.0), 1.0)
        with self._lock:
            self.progress = progress
            percent = int(progress * 100)
            if percent == self._last_percent:
                return
            self._last_percent = percent
        self._log.debug("Progress: %d%%", percent)
