"""Runtime helpers used by the run controller and the sinks."""

from .progress import ProgressReporter
from .history import ColumnarBuffer
from .helpers import format_exception_short, log_stage

__all__ = [
    "ProgressReporter",
    "ColumnarBuffer",
    "format_exception_short",
    "log_stage",
]
