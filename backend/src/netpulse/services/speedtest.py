"""Speedtest service: runs one measurement with retries."""

import asyncio
import time
from datetime import datetime, timedelta

import structlog

from ..config import SpeedtestSettings
from ..models import SpeedResult, TriggeredBy, utcnow
from .speedtest_tools import (
    TOOL_REGISTRY,
    SpeedtestTool,
    SpeedtestToolResult,
    detect_available_tools,
    get_tool,
)

log = structlog.get_logger()


class SpeedtestService:
    """Measurement provider.

    ``measure`` always returns a SpeedResult; failures after the last retry
    come back as a result with ``error`` set. Only cancellation propagates.
    """

    def __init__(
        self,
        settings: SpeedtestSettings | None = None,
        tools: list[SpeedtestTool] | None = None,
    ) -> None:
        self._settings = settings or SpeedtestSettings()
        if tools is None:
            available = detect_available_tools()
            log.info("speedtest_tools_detected", tools=available)
            tools = self._order_tools(available)
        self._tools = tools
        self._last_result: SpeedResult | None = None

    def _order_tools(self, available: list[str]) -> list[SpeedtestTool]:
        """Order available tools by configured preference."""
        ordered = [name for name in self._settings.preferred_tools if name in available]
        ordered += [name for name in available if name not in ordered]
        return [tool for name in ordered if (tool := get_tool(name)) is not None]

    @property
    def last_result(self) -> SpeedResult | None:
        return self._last_result

    def get_tool_info(self) -> dict:
        """Get information about available tools and configuration."""
        return {
            "available": [tool.name for tool in self._tools],
            "all_known": list(TOOL_REGISTRY.keys()),
            "preferred_order": self._settings.preferred_tools,
            "timeout_seconds": self._settings.timeout_seconds,
        }

    def _select_tool(self) -> SpeedtestTool | None:
        return self._tools[0] if self._tools else None

    @staticmethod
    def _to_record(
        outcome: SpeedtestToolResult, started: datetime, triggered_by: TriggeredBy
    ) -> SpeedResult:
        return SpeedResult(
            timestamp=started,
            download_mbps=outcome.download_mbps,
            upload_mbps=outcome.upload_mbps,
            ping=timedelta(milliseconds=outcome.ping_ms),
            bytes_received=outcome.bytes_received,
            bytes_sent=outcome.bytes_sent,
            server_name=outcome.server_name,
            tool=outcome.tool,
            triggered_by=triggered_by,
        )

    async def measure(self, triggered_by: TriggeredBy = "scheduled") -> SpeedResult:
        """Run a speed test, retrying with a fixed delay between attempts."""
        tool = self._select_tool()
        if tool is None:
            result = SpeedResult.failure(
                "No speedtest tool available. Install speedtest-cli or the Ookla CLI.",
                triggered_by=triggered_by,
            )
            self._last_result = result
            return result

        attempts = max(1, self._settings.max_attempts)
        outcome: SpeedtestToolResult | None = None
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                log.info("speedtest_retrying", attempt=attempt, max_attempts=attempts)
                await asyncio.sleep(self._settings.retry_delay_seconds)

            started = utcnow()
            test_start = time.monotonic()
            outcome = await tool.run(timeout=self._settings.timeout_seconds)
            if outcome.ok:
                try:
                    result = self._to_record(outcome, started, triggered_by)
                except (TypeError, ValueError) as e:
                    # pydantic.ValidationError is a ValueError
                    outcome = SpeedtestToolResult(
                        status="error",
                        tool=outcome.tool,
                        error_message=f"Invalid measurement: {e}",
                    )
                else:
                    log.debug(
                        "speedtest_attempt_succeeded",
                        attempt=attempt,
                        duration_seconds=round(time.monotonic() - test_start, 1),
                    )
                    self._last_result = result
                    return result

            log.warning(
                "speedtest_failed",
                attempt=attempt,
                tool=outcome.tool,
                status=outcome.status,
                error=outcome.error_message,
            )

        assert outcome is not None
        result = SpeedResult.failure(
            outcome.error_message or outcome.status,
            triggered_by=triggered_by,
            tool=tool.name,
        )
        self._last_result = result
        return result
