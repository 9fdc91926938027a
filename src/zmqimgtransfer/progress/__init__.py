"""Progress reporting primitives."""

from .callback import LoggingProgressCallback, ProgressCallback
from .reporter import ProgressReporter, as_reporter

__all__ = [
    "LoggingProgressCallback",
    "ProgressCallback",
    "ProgressReporter",
    "as_reporter",
]
