"""Fan-out of transfer status to the module logger and an optional sink."""

from __future__ import annotations

import logging
from typing import Optional

from zmqimgtransfer.progress.callback import ProgressCallback

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Null-tolerant wrapper around an optional ProgressCallback."""

    def __init__(self, callback: Optional[ProgressCallback] = None) -> None:
        self._callback = callback

    @property
    def callback(self) -> Optional[ProgressCallback]:
        return self._callback

    def info(self, message: str) -> None:
        logger.info(message)
        if self._callback is not None:
            self._callback.info(message)

    def set_progress(self, fraction: float) -> None:
        fraction = min(max(float(fraction), 0.0), 1.0)
        logger.debug("progress %.3f", fraction)
        if self._callback is not None:
            self._callback.set_progress(fraction)

    def image_done(self, images_done: int, expected_images: int) -> None:
        if expected_images > 0:
            self.set_progress(images_done / expected_images)


def as_reporter(progress) -> ProgressReporter:
    """Accept a reporter, a callback or None."""
    if isinstance(progress, ProgressReporter):
        return progress
    return ProgressReporter(progress)
