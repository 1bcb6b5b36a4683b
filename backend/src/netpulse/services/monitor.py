"""Monitor service: ties measurements, history and notifications together."""

import asyncio
import time
from datetime import datetime
from typing import Protocol

import structlog

from ..config import MonitorSettings
from ..metrics import MetricsCollector
from ..models import SpeedResult, WindowSummary, utcnow
from ..stats import ResultHistory
from ..stats.summary import is_low_speed
from .reports import format_alert, format_manual, render_summary
from .speedtest import SpeedtestService

log = structlog.get_logger()


class Notifier(Protocol):
    def send(self, text: str) -> bool: ...


class MonitorService:
    """Runs checks and builds reports.

    At most one measurement is in flight at a time, whether it was started
    by the schedule or by the operator.
    """

    def __init__(
        self,
        settings: MonitorSettings,
        history: ResultHistory,
        speedtest: SpeedtestService,
        notifier: Notifier | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._settings = settings
        self._history = history
        self._speedtest = speedtest
        self._notifier = notifier
        self._metrics = metrics
        self._measure_lock = asyncio.Lock()

    @property
    def history(self) -> ResultHistory:
        return self._history

    @property
    def is_measuring(self) -> bool:
        return self._measure_lock.locked()

    def should_alert(self, result: SpeedResult, manual: bool) -> bool:
        """Scheduled, successful tests below either threshold raise an alert."""
        if result.failed or manual:
            return False
        return is_low_speed(
            result, self._settings.download_threshold, self._settings.upload_threshold
        )

    async def run_check(self, manual: bool = False) -> str:
        """Measure, record and return the message to send.

        Returns the alert text, the manual result text, or an empty string
        for a scheduled test that needs no notification.
        """
        async with self._measure_lock:
            test_start = time.monotonic()
            log.info("speedtest_starting", manual=manual)

            result = await self._speedtest.measure("manual" if manual else "scheduled")
            alert = self.should_alert(result, manual)
            if alert:
                result = result.model_copy(update={"alert_sent": True})

            log.info(
                "speedtest_complete",
                download_mbps=round(result.download_mbps, 2),
                upload_mbps=round(result.upload_mbps, 2),
                ping_ms=result.ping_ms,
                error=result.error,
                alert=alert,
                duration_seconds=round(time.monotonic() - test_start, 1),
            )

            self._history.add(result)
            if self._metrics:
                self._metrics.record_speedtest(result)

        if alert:
            return format_alert(result)
        if manual:
            return format_manual(result)
        return ""

    async def run_scheduled_check(self) -> None:
        message = await self.run_check(manual=False)
        if message and self._notifier is not None:
            self._notifier.send(message)

    def summary(self, now: datetime | None = None) -> WindowSummary:
        """Summary of the last 24 hours."""
        return self._history.summary(
            now or utcnow(),
            self._settings.download_threshold,
            self._settings.upload_threshold,
        )

    def report(self, now: datetime | None = None) -> str:
        return render_summary(self.summary(now), tz=self._settings.zone)

    def send_report(self, now: datetime | None = None) -> None:
        """Queue the daily report for the operator."""
        if self._notifier is None:
            return
        summary = self.summary(now)
        log.info(
            "daily_report_generated",
            total_tests=summary.total_tests,
            alerts=summary.alerts_count,
            low_speed_events=len(summary.low_speed_events),
        )
        self._notifier.send(render_summary(summary, tz=self._settings.zone))
