"""Prometheus metrics for netpulse.

Exposes application metrics in Prometheus text format:
- HTTP request metrics (count, duration, status)
- Speed test metrics
- Notification delivery metrics
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from .models import SpeedResult


@dataclass
class MetricsCollector:
    """Collects and exposes application metrics.

    Uses simple counters and gauges without external dependencies.
    """

    # Request counters: {(method, path, status): count}
    request_count: dict[tuple[str, str, int], int] = field(default_factory=lambda: defaultdict(int))

    # Request duration: {(method, path): [total_ms, count]}
    request_duration: dict[tuple[str, str], list[float]] = field(
        default_factory=lambda: defaultdict(lambda: [0.0, 0])
    )

    gauges: dict[str, float] = field(default_factory=dict)
    counters: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    start_time: float = field(default_factory=time.time)

    def record_request(
        self, method: str, path: str, status_code: int, duration_ms: float
    ) -> None:
        """Record an HTTP request."""
        self.request_count[(method, path, status_code)] += 1
        duration_data = self.request_duration[(method, path)]
        duration_data[0] += duration_ms
        duration_data[1] += 1

    def set_gauge(self, name: str, value: float) -> None:
        self.gauges[name] = value

    def inc_counter(self, name: str, value: int = 1) -> None:
        self.counters[name] += value

    def record_speedtest(self, result: SpeedResult) -> None:
        """Record a completed measurement."""
        self.inc_counter("netpulse_speedtests_total")
        if result.failed:
            self.inc_counter("netpulse_speedtest_failures_total")
            return
        self.set_gauge("netpulse_speedtest_download_mbps", result.download_mbps)
        self.set_gauge("netpulse_speedtest_upload_mbps", result.upload_mbps)
        self.set_gauge("netpulse_speedtest_ping_ms", result.ping_ms)
        self.set_gauge("netpulse_speedtest_last_success_timestamp", result.timestamp.timestamp())
        if result.alert_sent:
            self.inc_counter("netpulse_alerts_total")

    def get_uptime_seconds(self) -> float:
        """Get application uptime in seconds."""
        return time.time() - self.start_time

    def to_prometheus_format(self, extra_gauges: dict[str, Any] | None = None) -> str:
        """Export metrics in Prometheus text format."""
        lines = [
            "# HELP netpulse_uptime_seconds Application uptime in seconds",
            "# TYPE netpulse_uptime_seconds gauge",
            f"netpulse_uptime_seconds {self.get_uptime_seconds():.2f}",
            "",
        ]

        if self.request_count:
            lines.append("# HELP http_requests_total Total HTTP requests")
            lines.append("# TYPE http_requests_total counter")
            for (method, path, status), count in sorted(self.request_count.items()):
                lines.append(
                    f'http_requests_total{{method="{method}",path="{path}",status="{status}"}} {count}'
                )
            lines.append("")

        if self.request_duration:
            lines.append("# HELP http_request_duration_ms_sum Total HTTP request duration in milliseconds")
            lines.append("# TYPE http_request_duration_ms_sum counter")
            for (method, path), (total_ms, _count) in sorted(self.request_duration.items()):
                lines.append(
                    f'http_request_duration_ms_sum{{method="{method}",path="{path}"}} {total_ms:.2f}'
                )
            lines.append("")

        for name, value in sorted(self.counters.items()):
            lines.append(f"# TYPE {name} counter")
            lines.append(f"{name} {value}")
            lines.append("")

        gauges = dict(self.gauges)
        if extra_gauges:
            gauges.update(extra_gauges)
        for name, value in sorted(gauges.items()):
            lines.append(f"# TYPE {name} gauge")
            lines.append(f"{name} {value}")
            lines.append("")

        return "\n".join(lines)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
