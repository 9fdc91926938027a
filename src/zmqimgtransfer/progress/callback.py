"""Progress sink contract consumed by the transfer code."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod


class ProgressCallback(ABC):
    """Receives human-readable status lines and a completion fraction."""

    @abstractmethod
    def info(self, message: str) -> None:
        """Report a status message, e.g. to a log widget."""

    @abstractmethod
    def set_progress(self, fraction: float) -> None:
        """Report how far the transfer is, 0.0 (not started) to 1.0 (done)."""


class LoggingProgressCallback(ProgressCallback):
    """Forwards progress to a ``logging.Logger``."""

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._logger = logger or logging.getLogger("zmqimgtransfer.progress")
        self._level = level
        self.last_fraction = 0.0

    def info(self, message: str) -> None:
        self._logger.log(self._level, message)

    def set_progress(self, fraction: float) -> None:
        self.last_fraction = fraction
        self._logger.log(self._level, "progress: %.0f%%", fraction * 100.0)
