"""Windowed statistics over speed test results.

Pure functions over caller-owned lists; no locking, no I/O.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from ..models import SpeedResult, WindowSummary

REPORT_WINDOW = timedelta(hours=24)


def _min_max_avg(values: Sequence[float]) -> tuple[float, float, float]:
    return min(values), max(values), sum(values) / len(values)


def is_low_speed(
    result: SpeedResult, download_threshold: float, upload_threshold: float
) -> bool:
    """Whether either direction is below its floor.

    Failed results carry zero throughput and therefore always qualify.
    """
    return result.download_mbps < download_threshold or result.upload_mbps < upload_threshold


def compute_summary(
    results: Iterable[SpeedResult],
    now: datetime,
    download_threshold: float,
    upload_threshold: float,
    window: timedelta = REPORT_WINDOW,
) -> WindowSummary:
    """Summarize the results that fall within ``window`` before ``now``.

    Args:
        results: Results in insertion order. May already be filtered.
        now: End of the window.
        download_threshold: Download floor in Mbps for low-speed events.
        upload_threshold: Upload floor in Mbps for low-speed events.
        window: Window length, 24 hours by default.

    Returns:
        WindowSummary. An empty window yields the zero summary; a window
        with only failed tests has a test count and zero metrics.
    """
    cutoff = now - window
    in_window = [r for r in results if r.timestamp > cutoff]
    if not in_window:
        return WindowSummary()

    valid = [r for r in in_window if not r.failed]

    metrics: dict = {}
    if valid:
        min_dl, max_dl, avg_dl = _min_max_avg([r.download_mbps for r in valid])
        min_ul, max_ul, avg_ul = _min_max_avg([r.upload_mbps for r in valid])
        pings = [r.ping for r in valid]
        metrics = {
            "avg_download": avg_dl,
            "min_download": min_dl,
            "max_download": max_dl,
            "avg_upload": avg_ul,
            "min_upload": min_ul,
            "max_upload": max_ul,
            # timedelta // int truncates to whole microseconds
            "avg_ping": sum(pings, timedelta()) // len(pings),
            "min_ping": min(pings),
            "max_ping": max(pings),
        }

    # TODO: skip failed results here once reports stop relying on them
    # showing up as low-speed events.
    low_speed = tuple(
        r for r in in_window if is_low_speed(r, download_threshold, upload_threshold)
    )

    return WindowSummary(
        total_tests=len(in_window),
        alerts_count=sum(1 for r in in_window if r.alert_sent),
        low_speed_events=low_speed,
        **metrics,
    )
