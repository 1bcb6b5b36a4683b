"""Result history and windowed statistics."""

from .history import DEFAULT_CAPACITY, ResultHistory
from .rwlock import RWLock
from .summary import REPORT_WINDOW, compute_summary, is_low_speed

__all__ = [
    "DEFAULT_CAPACITY",
    "REPORT_WINDOW",
    "ResultHistory",
    "RWLock",
    "compute_summary",
    "is_low_speed",
]
