"""Data models for netpulse using Pydantic."""

from datetime import datetime, timedelta, timezone
from typing import Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

TriggeredBy = Literal["scheduled", "manual"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SpeedResult(BaseModel):
    """Outcome of one speed test attempt.

    Throughput and latency are only meaningful when ``error`` is unset;
    failed tests carry zeros.
    """

    model_config = ConfigDict(frozen=True)

    # Must carry a time zone
    timestamp: AwareDatetime = Field(default_factory=utcnow)

    # Speed metrics
    download_mbps: float = Field(default=0.0, ge=0)
    upload_mbps: float = Field(default=0.0, ge=0)
    ping: timedelta = timedelta()
    bytes_received: int = 0
    bytes_sent: int = 0

    # Failure reason, None on success
    error: str | None = None
    # Set by the monitor when this result produced a threshold alert
    alert_sent: bool = False

    # Test metadata
    server_name: str | None = None
    tool: str = "unknown"
    triggered_by: TriggeredBy = "scheduled"

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def ping_ms(self) -> int:
        """Latency in whole milliseconds."""
        return self.ping // timedelta(milliseconds=1)

    @classmethod
    def failure(
        cls,
        error: str,
        triggered_by: TriggeredBy = "scheduled",
        tool: str = "unknown",
    ) -> "SpeedResult":
        """Build a failed result stamped with the current time."""
        return cls(error=error, triggered_by=triggered_by, tool=tool)


class WindowSummary(BaseModel):
    """Statistics over a time window of results.

    Metric fields are computed over successful tests only and are zero when
    the window holds none.
    """

    model_config = ConfigDict(frozen=True)

    total_tests: int = 0

    avg_download: float = 0.0
    min_download: float = 0.0
    max_download: float = 0.0

    avg_upload: float = 0.0
    min_upload: float = 0.0
    max_upload: float = 0.0

    avg_ping: timedelta = timedelta()
    min_ping: timedelta = timedelta()
    max_ping: timedelta = timedelta()

    alerts_count: int = 0
    # Oldest first
    low_speed_events: tuple[SpeedResult, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.total_tests == 0
