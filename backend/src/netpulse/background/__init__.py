"""Background task management for netpulse."""

from .scheduler import BackgroundScheduler, BackgroundTask, TaskState
from .tasks import (
    BotPollingTask,
    DailyReportTask,
    MessageDeliveryTask,
    SpeedCheckTask,
    next_report_time,
)

__all__ = [
    "BackgroundScheduler",
    "BackgroundTask",
    "TaskState",
    "BotPollingTask",
    "DailyReportTask",
    "MessageDeliveryTask",
    "SpeedCheckTask",
    "next_report_time",
]
