"""Background tasks driving the monitor."""

from datetime import datetime, timedelta, tzinfo

import structlog

from ..models import utcnow
from ..services.bot import UpdateDispatcher
from ..services.monitor import MonitorService
from ..services.telegram import TelegramClient, TelegramError, TelegramNotifier
from .scheduler import BackgroundTask

log = structlog.get_logger()


class SpeedCheckTask(BackgroundTask):
    """Scheduled speed test on a fixed interval."""

    def __init__(
        self,
        monitor: MonitorService,
        interval_seconds: float,
        initial_delay_seconds: float = 5.0,
    ):
        super().__init__(
            "speed_check",
            interval_seconds=interval_seconds,
            initial_delay_seconds=initial_delay_seconds,
        )
        self._monitor = monitor

    async def run_once(self) -> None:
        await self._monitor.run_scheduled_check()


def next_report_time(now: datetime, hour: int, tz: tzinfo) -> datetime:
    """Next occurrence of ``hour``:00 in ``tz`` at or after ``now``."""
    local_now = now.astimezone(tz)
    target = local_now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target < local_now:
        target += timedelta(days=1)
    return target


class DailyReportTask(BackgroundTask):
    """Sends the 24h report once a day at a fixed local hour."""

    def __init__(self, monitor: MonitorService, hour: int, tz: tzinfo):
        # The pause after sending keeps one report per scheduled hour
        super().__init__("daily_report", interval_seconds=60.0)
        self._monitor = monitor
        self._hour = hour
        self._tz = tz

    async def run_once(self) -> None:
        now = utcnow()
        target = next_report_time(now, self._hour, self._tz)
        wait_seconds = (target - now).total_seconds()
        log.info(
            "daily_report_scheduled",
            next_report=target.isoformat(),
            wait_seconds=round(wait_seconds),
        )

        if await self.sleep(wait_seconds):
            return

        self._monitor.send_report()


class MessageDeliveryTask(BackgroundTask):
    """Drains the notification queue, one message at a time."""

    def __init__(self, notifier: TelegramNotifier, poll_seconds: float = 1.0):
        super().__init__("message_delivery", interval_seconds=0)
        self._notifier = notifier
        self._poll_seconds = poll_seconds

    async def run_once(self) -> None:
        text = await self._notifier.next_message(timeout=self._poll_seconds)
        if text is None:
            return
        await self._notifier.deliver(text, stop_event=self._stop_event)


class BotPollingTask(BackgroundTask):
    """Long-polls the Bot API and dispatches operator commands."""

    def __init__(
        self,
        client: TelegramClient,
        notifier: TelegramNotifier,
        dispatcher: UpdateDispatcher,
        poll_timeout: int = 30,
        error_backoff_seconds: float = 5.0,
    ):
        super().__init__("bot_polling", interval_seconds=0)
        self._client = client
        self._notifier = notifier
        self._dispatcher = dispatcher
        self._poll_timeout = poll_timeout
        self._error_backoff_seconds = error_backoff_seconds
        self._offset: int | None = None
        self.connected = False

    async def on_start(self) -> None:
        me = await self._notifier.connect(stop_event=self._stop_event)
        self.connected = me is not None

    async def on_stop(self) -> None:
        await self._dispatcher.cancel_all()

    async def run_once(self) -> None:
        try:
            updates = await self._client.get_updates(self._offset, timeout=self._poll_timeout)
        except TelegramError as e:
            log.warning("telegram_poll_failed", error=str(e))
            await self.sleep(self._error_backoff_seconds)
            return

        for update in updates:
            self._offset = update["update_id"] + 1
            self._dispatcher.dispatch(update)
