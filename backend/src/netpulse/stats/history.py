"""Bounded in-memory history of speed test results."""

from collections import deque
from datetime import datetime, timedelta

import structlog

from ..models import SpeedResult, WindowSummary
from .rwlock import RWLock
from .summary import REPORT_WINDOW, compute_summary

log = structlog.get_logger()

DEFAULT_CAPACITY = 100


class ResultHistory:
    """Ring buffer of the most recent results, oldest first.

    Safe to share between the event loop and worker threads. History lives
    for the process lifetime only.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            capacity = DEFAULT_CAPACITY
        self._capacity = capacity
        self._results: deque[SpeedResult] = deque(maxlen=capacity)
        self._lock = RWLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._results)

    def add(self, result: SpeedResult) -> None:
        """Append a result, evicting the oldest one when full."""
        with self._lock.write():
            evicted = len(self._results) == self._capacity
            self._results.append(result)

        if evicted:
            log.debug("history_evicted_oldest", capacity=self._capacity)

    def snapshot(self, now: datetime, cutoff: timedelta) -> list[SpeedResult]:
        """Copy of the results newer than ``now - cutoff``, in insertion order."""
        since = now - cutoff
        with self._lock.read():
            return [r for r in self._results if r.timestamp > since]

    def all(self) -> list[SpeedResult]:
        """Copy of every retained result."""
        with self._lock.read():
            return list(self._results)

    def summary(
        self,
        now: datetime,
        download_threshold: float,
        upload_threshold: float,
        window: timedelta = REPORT_WINDOW,
    ) -> WindowSummary:
        """Summary of the trailing window ending at ``now``."""
        records = self.snapshot(now, window)
        return compute_summary(
            records,
            now=now,
            download_threshold=download_threshold,
            upload_threshold=upload_threshold,
            window=window,
        )
