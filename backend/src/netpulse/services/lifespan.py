"""Application lifespan management."""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from fastapi import FastAPI

from ..background import (
    BackgroundScheduler,
    BotPollingTask,
    DailyReportTask,
    MessageDeliveryTask,
    SpeedCheckTask,
)
from ..config import Settings, get_settings
from ..logging import get_logger
from ..metrics import MetricsCollector, get_metrics
from ..stats import ResultHistory
from .bot import BotCommandHandler, UpdateDispatcher
from .monitor import MonitorService
from .speedtest import SpeedtestService
from .telegram import TelegramClient, TelegramNotifier

log = get_logger("lifespan")

# Grace period for in-flight work on shutdown before tasks are cancelled
SHUTDOWN_TIMEOUT_SECONDS = 5.0


@dataclass
class AppState:
    """Application state container for dependency injection."""

    settings: Settings
    history: ResultHistory
    monitor: MonitorService
    metrics: MetricsCollector
    scheduler: BackgroundScheduler = field(default_factory=BackgroundScheduler)
    start_time: float = field(default_factory=time.time)

    @property
    def uptime_seconds(self) -> float:
        """Get application uptime in seconds."""
        return time.time() - self.start_time

    @property
    def is_ready(self) -> bool:
        """Background tasks started and the bot token verified."""
        if not self.scheduler.started:
            return False
        poller = self.scheduler.get_task("bot_polling")
        return not isinstance(poller, BotPollingTask) or poller.connected


def build_state(settings: Settings) -> tuple[AppState, TelegramClient]:
    """Wire up the monitor and its background tasks."""
    metrics = get_metrics()
    history = ResultHistory(settings.monitor.history_size)

    client = TelegramClient(
        settings.telegram.token,
        api_url=settings.telegram.api_url,
        timeout=settings.telegram.request_timeout_seconds,
    )
    notifier = TelegramNotifier(client, settings.telegram, metrics=metrics)
    monitor = MonitorService(
        settings.monitor,
        history,
        SpeedtestService(settings.speedtest),
        notifier=notifier,
        metrics=metrics,
    )
    handler = BotCommandHandler(client, settings.telegram.chat_id, runner=monitor, stats=monitor)

    scheduler = BackgroundScheduler()
    scheduler.add_task(MessageDeliveryTask(notifier))
    scheduler.add_task(
        BotPollingTask(
            client,
            notifier,
            UpdateDispatcher(handler),
            poll_timeout=settings.telegram.poll_timeout_seconds,
        )
    )
    scheduler.add_task(
        SpeedCheckTask(
            monitor,
            interval_seconds=settings.monitor.check_interval.total_seconds(),
            initial_delay_seconds=settings.monitor.initial_check_delay_seconds,
        )
    )
    scheduler.add_task(
        DailyReportTask(monitor, settings.monitor.daily_report_hour, settings.monitor.zone)
    )

    state = AppState(
        settings=settings,
        history=history,
        monitor=monitor,
        metrics=metrics,
        scheduler=scheduler,
    )
    return state, client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[dict]:
    """Application lifespan manager.

    Starts the monitor's background tasks and stops them on shutdown,
    aborting any in-flight measurement or delivery retry.
    """
    settings = get_settings()
    log.info("app_starting", app_name=settings.app_name, version=settings.version, **settings.describe())

    state, client = build_state(settings)
    try:
        await state.scheduler.start_all()
        yield {"state": state}
    finally:
        log.info("app_stopping")
        await state.scheduler.stop_all(timeout=SHUTDOWN_TIMEOUT_SECONDS)
        await client.close()
        log.info("app_stopped", uptime_seconds=round(state.uptime_seconds))
