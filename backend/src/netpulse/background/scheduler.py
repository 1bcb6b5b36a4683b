"""Background task scheduler with proper lifecycle management.

This module provides a scheduler for long-running background tasks with:
- Graceful startup and shutdown
- Task state tracking
- Error handling and recovery
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator

import structlog

from ..models import utcnow

log = structlog.get_logger()


class TaskState(str, Enum):
    """Background task lifecycle states."""

    PENDING = "pending"  # Not yet started
    RUNNING = "running"  # Actively running
    STOPPING = "stopping"  # Graceful shutdown initiated
    STOPPED = "stopped"  # Fully stopped
    FAILED = "failed"  # Stopped due to error


@dataclass
class TaskStatus:
    """Status information for a background task."""

    name: str
    state: TaskState = TaskState.PENDING
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    last_run_at: datetime | None = None
    run_count: int = 0
    error_count: int = 0
    last_error: str | None = None
    metrics: dict[str, Any] = field(default_factory=dict)


class BackgroundTask(ABC):
    """Abstract base class for background tasks.

    Subclass this to create tasks that run periodically or continuously.
    ``run_once`` is called in a loop with ``interval_seconds`` between calls.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float = 1.0,
        initial_delay_seconds: float = 0.0,
    ):
        self.name = name
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._status = TaskStatus(name=name)
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    @property
    def status(self) -> TaskStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status.state == TaskState.RUNNING

    @property
    def stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    @abstractmethod
    async def run_once(self) -> None:
        """Execute one iteration of the task."""

    async def on_start(self) -> None:
        """Called when task starts. Override for setup logic."""

    async def on_stop(self) -> None:
        """Called when task stops. Override for cleanup logic."""

    async def sleep(self, seconds: float) -> bool:
        """Sleep unless stopped. Returns True if a stop was requested."""
        assert self._stop_event is not None
        if seconds <= 0:
            # Always yield to the event loop between iterations
            await asyncio.sleep(0)
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _run_loop(self) -> None:
        """Internal run loop with error handling."""
        assert self._stop_event is not None

        try:
            await self.on_start()
            self._status.state = TaskState.RUNNING
            self._status.started_at = utcnow()
            log.info("background_task_started", task=self.name)

            if await self.sleep(self.initial_delay_seconds):
                return

            while not self._stop_event.is_set():
                try:
                    await self.run_once()
                    self._status.run_count += 1
                    self._status.last_run_at = utcnow()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self._status.error_count += 1
                    self._status.last_error = str(e)
                    log.error(
                        "background_task_error",
                        task=self.name,
                        error=str(e),
                        error_count=self._status.error_count,
                    )

                # Wait for next iteration or stop signal
                if await self.sleep(self.interval_seconds):
                    break

        except asyncio.CancelledError:
            log.info("background_task_cancelled", task=self.name)
        finally:
            self._status.state = TaskState.STOPPED
            self._status.stopped_at = utcnow()
            await self.on_stop()
            log.info(
                "background_task_stopped",
                task=self.name,
                run_count=self._status.run_count,
                error_count=self._status.error_count,
            )

    async def start(self) -> None:
        """Start the background task."""
        if self._status.state == TaskState.RUNNING:
            log.warning("background_task_already_running", task=self.name)
            return

        self._stop_event = asyncio.Event()
        self._status.state = TaskState.PENDING
        self._task = asyncio.create_task(self._run_loop(), name=self.name)

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop the background task gracefully, cancelling it after ``timeout``."""
        if self._stop_event is None or self._task is None:
            return

        self._status.state = TaskState.STOPPING
        self._stop_event.set()

        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("background_task_force_cancel", task=self.name)
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass


class BackgroundScheduler:
    """Manages multiple background tasks with coordinated lifecycle.

    Usage:
        scheduler = BackgroundScheduler()
        scheduler.add_task(SpeedCheckTask(monitor, interval_seconds=1800))

        async with scheduler.lifespan():
            ...
    """

    def __init__(self):
        self._tasks: dict[str, BackgroundTask] = {}
        self._started = False

    def add_task(self, task: BackgroundTask) -> None:
        """Register a background task."""
        if task.name in self._tasks:
            raise ValueError(f"Task '{task.name}' already registered")
        self._tasks[task.name] = task
        log.info("background_task_registered", task=task.name)

    def get_task(self, name: str) -> BackgroundTask | None:
        """Get a task by name."""
        return self._tasks.get(name)

    def get_all_status(self) -> dict[str, TaskStatus]:
        """Get status of all tasks."""
        return {name: task.status for name, task in self._tasks.items()}

    @property
    def started(self) -> bool:
        return self._started

    async def start_all(self) -> None:
        """Start all registered tasks."""
        if self._started:
            log.warning("scheduler_already_started")
            return

        log.info("scheduler_starting", task_count=len(self._tasks))
        for task in self._tasks.values():
            await task.start()
        self._started = True
        log.info("scheduler_started")

    async def stop_all(self, timeout: float = 10.0) -> None:
        """Stop all tasks concurrently."""
        if not self._started:
            return

        log.info("scheduler_stopping", task_count=len(self._tasks))

        await asyncio.gather(
            *[task.stop(timeout) for task in self._tasks.values()],
            return_exceptions=True,
        )

        self._started = False
        log.info("scheduler_stopped")

    @asynccontextmanager
    async def lifespan(self) -> AsyncIterator["BackgroundScheduler"]:
        """Run all tasks for the duration of the context."""
        await self.start_all()
        try:
            yield self
        finally:
            await self.stop_all()

    @property
    def is_healthy(self) -> bool:
        """Check if all tasks are running normally."""
        if not self._started:
            return False
        return all(
            task.status.state == TaskState.RUNNING for task in self._tasks.values()
        )
