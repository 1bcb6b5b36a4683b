"""Tests for the background scheduler and monitor tasks."""

import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from fakes import FakeNotifier, FakeTelegramClient, FakeTool, tool_success
from netpulse.background import (
    BackgroundScheduler,
    BackgroundTask,
    BotPollingTask,
    DailyReportTask,
    MessageDeliveryTask,
    SpeedCheckTask,
    TaskState,
    next_report_time,
)
from netpulse.models import utcnow
from netpulse.services.bot import BotCommandHandler, HELP_TEXT, UpdateDispatcher
from netpulse.services.monitor import MonitorService
from netpulse.services.speedtest import SpeedtestService
from netpulse.services.telegram import TelegramNotifier
from netpulse.stats import ResultHistory


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout=timeout)


class CountingTask(BackgroundTask):
    def __init__(self, fail: bool = False, **kwargs):
        super().__init__("counting", **kwargs)
        self.fail = fail
        self.calls = 0
        self.stopped = False

    async def run_once(self) -> None:
        self.calls += 1
        if self.fail:
            raise RuntimeError("boom")

    async def on_stop(self) -> None:
        self.stopped = True


class StubbornTask(BackgroundTask):
    """Ignores the stop signal."""

    def __init__(self):
        super().__init__("stubborn", interval_seconds=0)
        self.started = asyncio.Event()

    async def run_once(self) -> None:
        self.started.set()
        await asyncio.sleep(3600)


class TestNextReportTime:
    def test_later_today(self):
        now = datetime(2024, 5, 1, 6, 30, tzinfo=timezone.utc)
        assert next_report_time(now, 8, timezone.utc) == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    def test_already_passed_rolls_to_tomorrow(self):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert next_report_time(now, 8, timezone.utc) == datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc)

    def test_exactly_on_the_hour(self):
        now = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
        assert next_report_time(now, 8, timezone.utc) == now

    def test_local_zone(self):
        kyiv = ZoneInfo("Europe/Kyiv")
        # 15:00 in Kyiv
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        target = next_report_time(now, 8, kyiv)

        assert target == datetime(2024, 5, 2, 8, 0, tzinfo=kyiv)
        assert target.astimezone(timezone.utc) == datetime(2024, 5, 2, 5, 0, tzinfo=timezone.utc)


class TestBackgroundTask:
    @pytest.mark.asyncio
    async def test_runs_until_stopped(self):
        task = CountingTask(interval_seconds=0.01)

        await task.start()
        await wait_until(lambda: task.calls >= 3)
        await task.stop()

        assert task.status.state == TaskState.STOPPED
        assert task.status.run_count >= 3
        assert task.stopped

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_the_loop(self):
        task = CountingTask(fail=True, interval_seconds=0.01)

        await task.start()
        await wait_until(lambda: task.calls >= 2)
        await task.stop()

        assert task.status.error_count >= 2
        assert task.status.last_error == "boom"
        assert task.status.run_count == 0

    @pytest.mark.asyncio
    async def test_stop_during_initial_delay(self):
        task = CountingTask(interval_seconds=0.01, initial_delay_seconds=60)

        await task.start()
        await wait_until(lambda: task.is_running)
        await task.stop(timeout=1)

        assert task.calls == 0
        assert task.status.state == TaskState.STOPPED

    @pytest.mark.asyncio
    async def test_stubborn_task_is_cancelled(self):
        task = StubbornTask()

        await task.start()
        await asyncio.wait_for(task.started.wait(), timeout=1)
        await task.stop(timeout=0.05)

        assert task.status.state == TaskState.STOPPED


class TestBackgroundScheduler:
    @pytest.mark.asyncio
    async def test_lifespan_starts_and_stops_tasks(self):
        scheduler = BackgroundScheduler()
        task = CountingTask(interval_seconds=0.01)
        scheduler.add_task(task)

        async with scheduler.lifespan():
            assert scheduler.started
            await wait_until(lambda: task.calls >= 1)
            assert scheduler.is_healthy

        assert not scheduler.started
        assert task.status.state == TaskState.STOPPED

    def test_duplicate_names_rejected(self):
        scheduler = BackgroundScheduler()
        scheduler.add_task(CountingTask())
        with pytest.raises(ValueError):
            scheduler.add_task(CountingTask())

    def test_status_lookup(self):
        scheduler = BackgroundScheduler()
        task = CountingTask()
        scheduler.add_task(task)

        assert scheduler.get_task("counting") is task
        assert scheduler.get_task("missing") is None
        assert scheduler.get_all_status()["counting"].state == TaskState.PENDING
        assert not scheduler.is_healthy


def make_monitor(monitor_settings, speedtest_settings, notifier=None):
    return MonitorService(
        monitor_settings,
        ResultHistory(),
        SpeedtestService(speedtest_settings, tools=[FakeTool([tool_success(download=10, upload=5)])]),
        notifier=notifier,
    )


class TestMonitorTasks:
    @pytest.mark.asyncio
    async def test_speed_check_runs_after_initial_delay(self, monitor_settings, speedtest_settings):
        notifier = FakeNotifier()
        monitor = make_monitor(monitor_settings, speedtest_settings, notifier)
        task = SpeedCheckTask(monitor, interval_seconds=3600, initial_delay_seconds=0.01)

        await task.start()
        await wait_until(lambda: len(monitor.history) == 1)
        await task.stop(timeout=1)

        assert len(monitor.history) == 1
        assert notifier.sent[0].startswith("🚨")

    @pytest.mark.asyncio
    async def test_daily_report_sent_at_target(self, monitor_settings, speedtest_settings, monkeypatch):
        notifier = FakeNotifier()
        monitor = make_monitor(monitor_settings, speedtest_settings, notifier)
        monkeypatch.setattr(
            "netpulse.background.tasks.next_report_time",
            lambda now, hour, tz: utcnow() + timedelta(milliseconds=10),
        )
        task = DailyReportTask(monitor, hour=8, tz=timezone.utc)

        await task.start()
        await wait_until(lambda: len(notifier.sent) == 1)
        await task.stop(timeout=1)

        assert notifier.sent[0].startswith("📊 <b>Daily Report</b>")

    @pytest.mark.asyncio
    async def test_message_delivery_drains_queue(self, telegram_settings):
        client = FakeTelegramClient(failures=1)
        notifier = TelegramNotifier(client, telegram_settings)
        notifier.send("first")
        notifier.send("second")
        task = MessageDeliveryTask(notifier, poll_seconds=0.01)

        await task.start()
        await wait_until(lambda: len(client.sent) == 2)
        await task.stop(timeout=1)

        assert [m["text"] for m in client.sent] == ["first", "second"]
        assert notifier.pending == 0

    @pytest.mark.asyncio
    async def test_bot_polling_dispatches_updates(self, telegram_settings):
        client = FakeTelegramClient()
        client.updates = [
            [{"update_id": 10, "message": {"text": "/help", "chat": {"id": 42}}}],
            [{"update_id": 11, "message": {"text": "/help", "chat": {"id": 7}}}],
        ]
        notifier = TelegramNotifier(client, telegram_settings)

        class NoStats:
            def report(self) -> str:
                return ""

        class NoRunner:
            async def run_check(self, manual: bool = False) -> str:
                return ""

        handler = BotCommandHandler(client, 42, NoRunner(), NoStats())
        task = BotPollingTask(client, notifier, UpdateDispatcher(handler), poll_timeout=0)

        await task.start()
        await wait_until(lambda: not client.updates and len(client.sent) == 1)
        await task.stop(timeout=1)

        assert task.connected
        assert client.get_me_calls == 1
        assert client.sent[0]["text"] == HELP_TEXT
