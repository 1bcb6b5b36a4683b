"""Services module for netpulse."""

from .bot import BotCommandHandler, SpeedTestRunner, StatsProvider, UpdateDispatcher
from .monitor import MonitorService, Notifier
from .reports import format_alert, format_manual, format_result, render_summary
from .speedtest import SpeedtestService
from .telegram import TelegramClient, TelegramError, TelegramNotifier

__all__ = [
    "BotCommandHandler",
    "SpeedTestRunner",
    "StatsProvider",
    "UpdateDispatcher",
    "MonitorService",
    "Notifier",
    "format_alert",
    "format_manual",
    "format_result",
    "render_summary",
    "SpeedtestService",
    "TelegramClient",
    "TelegramError",
    "TelegramNotifier",
]
