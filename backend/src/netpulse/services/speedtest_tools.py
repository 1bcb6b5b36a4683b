"""Speedtest tool implementations with pluggable architecture."""

import asyncio
import json
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import structlog

log = structlog.get_logger()


@dataclass
class SpeedtestToolResult:
    """Standardized result from any speedtest tool."""

    status: str  # "success", "error", "timeout"
    download_mbps: float = 0.0
    upload_mbps: float = 0.0
    ping_ms: float = 0.0
    bytes_received: int = 0
    bytes_sent: int = 0

    server_name: str | None = None
    tool: str = "unknown"

    error_message: str | None = None
    raw_output: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "success"


async def run_command(cmd: list[str], timeout: float) -> tuple[int, str, str]:
    """Run a command, killing it on timeout or cancellation.

    Raises asyncio.TimeoutError when the command outlives ``timeout``.
    """
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except BaseException:
        # Timeout or cancellation, the child must not outlive us
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    return proc.returncode or 0, stdout.decode(errors="replace"), stderr.decode(errors="replace")


def _number(value: Any) -> float:
    """Numeric report field; null or missing reads as zero."""
    return float(value or 0)


class SpeedtestTool(ABC):
    """Abstract base class for speedtest tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool identifier."""

    @abstractmethod
    def command(self) -> list[str]:
        """Command line producing a JSON report on stdout."""

    @abstractmethod
    def parse(self, data: dict[str, Any]) -> SpeedtestToolResult:
        """Convert the tool's JSON report."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this tool is installed and available."""

    async def run(self, timeout: float = 120) -> SpeedtestToolResult:
        """Run the speedtest once. Failures are returned, not raised."""
        try:
            returncode, stdout, stderr = await run_command(self.command(), timeout)
        except asyncio.TimeoutError:
            return SpeedtestToolResult(
                status="timeout",
                tool=self.name,
                error_message=f"Timed out after {timeout}s",
            )
        except OSError as e:
            return SpeedtestToolResult(status="error", tool=self.name, error_message=str(e))

        if returncode != 0:
            return SpeedtestToolResult(
                status="error",
                tool=self.name,
                error_message=stderr.strip() or f"Exit code {returncode}",
            )

        try:
            return self.parse(json.loads(stdout))
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            return SpeedtestToolResult(
                status="error",
                tool=self.name,
                error_message=f"JSON parse error: {e}",
            )


class OoklaSpeedtestTool(SpeedtestTool):
    """Ookla official CLI tool (speedtest command)."""

    @property
    def name(self) -> str:
        return "ookla-speedtest"

    def is_available(self) -> bool:
        try:
            result = subprocess.run(
                ["speedtest", "--version"],
                capture_output=True,
                timeout=5,
            )
            # Ookla CLI outputs "Speedtest by Ookla" in version
            return result.returncode == 0 and b"Ookla" in result.stdout
        except (OSError, subprocess.SubprocessError):
            return False

    def command(self) -> list[str]:
        return ["speedtest", "--format=json", "--accept-license", "--accept-gdpr"]

    def parse(self, data: dict[str, Any]) -> SpeedtestToolResult:
        download = data.get("download") or {}
        upload = data.get("upload") or {}
        # bandwidth is reported in bytes per second
        return SpeedtestToolResult(
            status="success",
            download_mbps=_number(download.get("bandwidth")) * 8 / 1_000_000,
            upload_mbps=_number(upload.get("bandwidth")) * 8 / 1_000_000,
            ping_ms=_number((data.get("ping") or {}).get("latency")),
            bytes_received=int(_number(download.get("bytes"))),
            bytes_sent=int(_number(upload.get("bytes"))),
            server_name=(data.get("server") or {}).get("name"),
            tool=self.name,
            raw_output=data,
        )


class SpeedtestCliTool(SpeedtestTool):
    """Python speedtest-cli package."""

    @property
    def name(self) -> str:
        return "speedtest-cli"

    def is_available(self) -> bool:
        try:
            result = subprocess.run(
                [sys.executable, "-m", "speedtest", "--version"],
                capture_output=True,
                timeout=5,
            )
            return result.returncode == 0
        except (OSError, subprocess.SubprocessError):
            return False

    def command(self) -> list[str]:
        return [sys.executable, "-m", "speedtest", "--json", "--secure"]

    def parse(self, data: dict[str, Any]) -> SpeedtestToolResult:
        # download/upload are reported in bits per second
        return SpeedtestToolResult(
            status="success",
            download_mbps=_number(data.get("download")) / 1_000_000,
            upload_mbps=_number(data.get("upload")) / 1_000_000,
            ping_ms=_number(data.get("ping")),
            bytes_received=int(_number(data.get("bytes_received"))),
            bytes_sent=int(_number(data.get("bytes_sent"))),
            server_name=(data.get("server") or {}).get("name"),
            tool=self.name,
            raw_output=data,
        )


# Registry of available tools
TOOL_REGISTRY: dict[str, type[SpeedtestTool]] = {
    "ookla-speedtest": OoklaSpeedtestTool,
    "speedtest-cli": SpeedtestCliTool,
}


def get_tool(name: str) -> SpeedtestTool | None:
    """Get a tool instance by name."""
    tool_class = TOOL_REGISTRY.get(name)
    if tool_class:
        return tool_class()
    return None


def detect_available_tools() -> list[str]:
    """Detect which speedtest tools are installed and available."""
    available = []
    for name, tool_class in TOOL_REGISTRY.items():
        if tool_class().is_available():
            available.append(name)
            log.debug("speedtest_tool_available", tool=name)
        else:
            log.debug("speedtest_tool_not_available", tool=name)
    return available
