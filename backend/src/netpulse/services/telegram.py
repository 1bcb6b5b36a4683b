"""Telegram Bot API client and outbound notification queue."""

import asyncio
from typing import Any

import httpx
import structlog

from ..config import TelegramSettings
from ..metrics import MetricsCollector

log = structlog.get_logger()

MAIN_KEYBOARD: dict[str, Any] = {
    "keyboard": [
        [{"text": "Test Speed"}, {"text": "Get Stats"}],
        [{"text": "Help"}],
    ],
    "resize_keyboard": True,
}


class TelegramError(Exception):
    """A Bot API call failed or was rejected."""


class TelegramClient:
    """Minimal async client for the Telegram Bot API."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=f"{api_url.rstrip('/')}/bot{token}/",
            timeout=timeout,
            transport=transport,
        )

    async def _call(
        self,
        method: str,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        try:
            response = await self._client.post(
                method,
                json=payload or {},
                timeout=timeout if timeout is not None else self._timeout,
            )
            data = response.json()
        except httpx.HTTPError as e:
            raise TelegramError(f"{method}: {e}") from e
        except ValueError as e:
            raise TelegramError(f"{method}: invalid response body") from e

        if not data.get("ok"):
            raise TelegramError(
                f"{method}: {data.get('description', f'HTTP {response.status_code}')}"
            )
        return data.get("result")

    async def get_me(self) -> dict[str, Any]:
        return await self._call("getMe")

    async def get_updates(self, offset: int | None = None, timeout: int = 30) -> list[dict[str, Any]]:
        """Long-poll for updates."""
        payload: dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset
        # Leave headroom over the server-side long poll
        return await self._call("getUpdates", payload, timeout=timeout + self._timeout)

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        return await self._call("sendMessage", payload)

    async def close(self) -> None:
        await self._client.aclose()


class TelegramNotifier:
    """Best-effort notifications to the operator chat.

    ``send`` never blocks: messages go into a bounded queue that the delivery
    worker drains, and are dropped when the queue is full.
    """

    def __init__(
        self,
        client: TelegramClient,
        settings: TelegramSettings,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._metrics = metrics
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=settings.queue_size)

    @property
    def chat_id(self) -> int:
        return self._settings.chat_id

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def send(self, text: str) -> bool:
        """Queue a message. Returns False when it had to be dropped."""
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            log.warning("telegram_queue_full", queue_size=self._settings.queue_size)
            if self._metrics:
                self._metrics.inc_counter("netpulse_messages_dropped_total")
            return False
        return True

    async def next_message(self, timeout: float) -> str | None:
        """Wait up to ``timeout`` seconds for a queued message."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def deliver(self, text: str, stop_event: asyncio.Event | None = None) -> bool:
        """Send one message with exponential backoff.

        Gives up after ``max_attempts`` or as soon as ``stop_event`` is set
        between attempts. Returns True if the message went out.
        """
        backoff = self._settings.initial_backoff_seconds
        attempts = max(1, self._settings.max_attempts)

        for attempt in range(1, attempts + 1):
            if stop_event is not None and stop_event.is_set():
                return False
            try:
                await self._client.send_message(self.chat_id, text, reply_markup=MAIN_KEYBOARD)
            except TelegramError as e:
                log.error(
                    "telegram_send_failed",
                    attempt=attempt,
                    max_attempts=attempts,
                    retry_in_seconds=backoff if attempt < attempts else None,
                    error=str(e),
                )
            else:
                if self._metrics:
                    self._metrics.inc_counter("netpulse_messages_sent_total")
                return True

            if attempt == attempts:
                break
            if await _wait_or_stop(stop_event, backoff):
                log.info("telegram_send_aborted", attempt=attempt)
                return False
            backoff = min(backoff * 2, self._settings.max_backoff_seconds)

        log.error("telegram_send_gave_up", max_attempts=attempts)
        if self._metrics:
            self._metrics.inc_counter("netpulse_messages_failed_total")
        return False

    async def connect(self, stop_event: asyncio.Event | None = None) -> dict[str, Any] | None:
        """Verify the bot token, retrying until it works or we are stopped."""
        while True:
            try:
                me = await self._client.get_me()
            except TelegramError as e:
                log.error(
                    "telegram_connect_failed",
                    error=str(e),
                    retry_in_seconds=self._settings.connect_retry_seconds,
                )
            else:
                log.info("telegram_connected", username=me.get("username"))
                return me

            if await _wait_or_stop(stop_event, self._settings.connect_retry_seconds):
                return None


async def _wait_or_stop(stop_event: asyncio.Event | None, seconds: float) -> bool:
    """Sleep for ``seconds``. Returns True if ``stop_event`` fired first."""
    if stop_event is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        return True
    except asyncio.TimeoutError:
        return False
