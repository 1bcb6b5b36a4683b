"""Telegram bot command handling."""

import asyncio
from typing import Any, Awaitable, Callable, Protocol

import structlog

from .telegram import MAIN_KEYBOARD, TelegramClient, TelegramError

log = structlog.get_logger()

WELCOME_TEXT = (
    "👋 <b>Hello!</b> I am netpulse, your internet connection monitor.\n\n"
    "I will periodically check your internet speed and notify you if it drops "
    "below the configured thresholds.\n"
    "Use /help to see available commands."
)

HELP_TEXT = (
    "📋 <b>Available Commands:</b>\n"
    "/test - Run an immediate speed test\n"
    "/stats - Get statistics for the last 24h\n"
    "/help - Show this help message\n"
    "/start - Welcome message"
)

TEST_STARTING_TEXT = "🚀 <b>Starting manual speed test...</b> Please wait."


class SpeedTestRunner(Protocol):
    async def run_check(self, manual: bool = False) -> str: ...


class StatsProvider(Protocol):
    def report(self) -> str: ...


class BotCommandHandler:
    """Dispatches operator commands to the monitor."""

    def __init__(
        self,
        client: TelegramClient,
        chat_id: int,
        runner: SpeedTestRunner,
        stats: StatsProvider,
    ) -> None:
        self._client = client
        self._chat_id = chat_id
        self._runner = runner
        self._stats = stats
        self._commands: dict[str, Callable[[int], Awaitable[None]]] = {
            "/start": self._start,
            "/help": self._help,
            "Help": self._help,
            "/test": self._test,
            "/speed": self._test,
            "Test Speed": self._test,
            "/stats": self._stats_report,
            "Get Stats": self._stats_report,
        }

    @property
    def commands(self) -> list[str]:
        return list(self._commands)

    async def handle_update(self, update: dict[str, Any]) -> bool:
        """Handle one update. Returns True if it matched a command."""
        message = update.get("message") or {}
        text = (message.get("text") or "").strip()
        chat_id = (message.get("chat") or {}).get("id")
        if not text or chat_id is None:
            return False

        if chat_id != self._chat_id:
            log.info("telegram_update_ignored", chat_id=chat_id, reason="unknown_chat")
            return False

        # "/stats@my_bot" in group chats
        command = text.split("@", 1)[0] if text.startswith("/") else text
        handler = self._commands.get(command)
        if handler is None:
            return False

        log.info("telegram_command", command=command)
        await handler(chat_id)
        return True

    async def _reply(self, chat_id: int, text: str, keyboard: bool = True) -> None:
        try:
            await self._client.send_message(
                chat_id, text, reply_markup=MAIN_KEYBOARD if keyboard else None
            )
        except TelegramError as e:
            log.error("telegram_reply_failed", error=str(e))

    async def _start(self, chat_id: int) -> None:
        await self._reply(chat_id, WELCOME_TEXT)

    async def _help(self, chat_id: int) -> None:
        await self._reply(chat_id, HELP_TEXT)

    async def _test(self, chat_id: int) -> None:
        await self._reply(chat_id, TEST_STARTING_TEXT, keyboard=False)
        result_text = await self._runner.run_check(manual=True)
        await self._reply(chat_id, result_text)

    async def _stats_report(self, chat_id: int) -> None:
        await self._reply(chat_id, self._stats.report())


class UpdateDispatcher:
    """Runs each update handler in its own task.

    Keeps polling responsive while a manual test is running.
    """

    def __init__(self, handler: BotCommandHandler) -> None:
        self._handler = handler
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, update: dict[str, Any]) -> asyncio.Task:
        task = asyncio.create_task(self._run(update))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, update: dict[str, Any]) -> None:
        try:
            await self._handler.handle_update(update)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("telegram_update_error", update_id=update.get("update_id"), error=str(e))

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
