"""Human-readable message text for Telegram (HTML parse mode)."""

from datetime import timedelta, tzinfo

from ..models import SpeedResult, WindowSummary

MAX_LISTED_EVENTS = 5


def format_result(result: SpeedResult) -> str:
    """Format a single test result."""
    if result.failed:
        return f"⚠️ <b>Test Failed:</b> {result.error}"
    return (
        f"⬇️ <b>Download:</b> {result.download_mbps:.2f} Mbps\n"
        f"⬆️ <b>Upload:</b> {result.upload_mbps:.2f} Mbps\n"
        f"📶 <b>Ping:</b> {result.ping_ms} ms"
    )


def format_alert(result: SpeedResult) -> str:
    return f"🚨 <b>Internet Quality Alert!</b>\n{format_result(result)}"


def format_manual(result: SpeedResult) -> str:
    return f"✅ <b>Manual Test Result:</b>\n{format_result(result)}"


def _format_event(event: SpeedResult, tz: tzinfo | None) -> str:
    when = event.timestamp.astimezone(tz).strftime("%H:%M")
    if event.failed:
        return f"- {when}: test failed"
    return (
        f"- {when}: ▼{event.download_mbps:.1f} ▲{event.upload_mbps:.1f} Mbps, "
        f"{event.ping_ms}ms"
    )


def render_summary(summary: WindowSummary, tz: tzinfo | None = None) -> str:
    """Render the 24h report.

    Metric sections are left out entirely when the window has no tests.
    Low-speed events are listed newest first, at most five.
    """
    lines = ["📊 <b>Daily Report</b> (Last 24h)", f"Tests run: {summary.total_tests}"]

    if not summary.is_empty:
        lines.append(f"Alerts triggered: {summary.alerts_count}")
        lines.append("")
        lines.append("📉 <b>Download</b>:")
        lines.append(
            f"Avg: {summary.avg_download:.2f} | Min: {summary.min_download:.2f} | "
            f"Max: {summary.max_download:.2f} Mbps"
        )
        lines.append("📈 <b>Upload</b>:")
        lines.append(
            f"Avg: {summary.avg_upload:.2f} | Min: {summary.min_upload:.2f} | "
            f"Max: {summary.max_upload:.2f} Mbps"
        )
        lines.append("📶 <b>Ping</b>:")
        lines.append(
            f"Avg: {_ms(summary.avg_ping)}ms | Min: {_ms(summary.min_ping)}ms | "
            f"Max: {_ms(summary.max_ping)}ms"
        )

    events = summary.low_speed_events
    if events:
        lines.append("")
        lines.append("⚠️ <b>Low Speed Events:</b>")
        recent = list(reversed(events))
        for event in recent[:MAX_LISTED_EVENTS]:
            lines.append(_format_event(event, tz))
        if len(recent) > MAX_LISTED_EVENTS:
            lines.append("...and more")

    return "\n".join(lines) + "\n"


def _ms(value: timedelta) -> int:
    return value // timedelta(milliseconds=1)
