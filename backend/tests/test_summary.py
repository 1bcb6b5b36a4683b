"""Tests for windowed summary statistics."""

from datetime import timedelta

import pytest

from fakes import make_result
from netpulse.models import WindowSummary
from netpulse.stats import ResultHistory, compute_summary


class TestComputeSummary:
    def test_last_24h_scenario(self, now):
        history = ResultHistory(capacity=10)
        history.add(make_result(now - timedelta(hours=1), download=100, upload=50, ping_ms=20))
        history.add(make_result(now - timedelta(hours=2), download=50, upload=20, ping_ms=40))
        # Outside the window
        history.add(make_result(now - timedelta(hours=25), download=200, upload=100))
        history.add(
            make_result(now - timedelta(minutes=30), download=10, upload=5, ping_ms=0, alert_sent=True)
        )

        summary = history.summary(now, 80.0, 100.0)

        assert summary.total_tests == 3
        assert summary.alerts_count == 1
        assert summary.avg_download == pytest.approx(53.333, abs=0.01)
        assert summary.min_download == 10
        assert summary.max_download == 100
        assert summary.min_upload == 5
        assert summary.max_upload == 50
        # Upload floor 100 catches all three
        assert len(summary.low_speed_events) == 3

    def test_empty_window_is_zero_summary(self, now):
        summary = compute_summary([], now, 80.0, 100.0)

        assert summary == WindowSummary()
        assert summary.total_tests == 0
        assert summary.avg_download == 0
        assert summary.avg_ping == timedelta()
        assert summary.low_speed_events == ()

    def test_only_old_records_is_zero_summary(self, now):
        records = [make_result(now - timedelta(hours=30))]
        assert compute_summary(records, now, 80.0, 100.0) == WindowSummary()

    def test_failed_tests_counted_but_excluded_from_metrics(self, now):
        records = [
            make_result(now - timedelta(hours=3), download=90, upload=110, ping_ms=10),
            make_result(now - timedelta(hours=2), error="server unreachable"),
            make_result(now - timedelta(hours=1), download=110, upload=130, ping_ms=30),
            make_result(now - timedelta(minutes=10), error="timeout"),
        ]

        summary = compute_summary(records, now, 80.0, 100.0)

        assert summary.total_tests == 4
        assert summary.avg_download == pytest.approx(100.0)
        assert summary.min_download == 90
        assert summary.avg_upload == pytest.approx(120.0)
        assert summary.min_ping == timedelta(milliseconds=10)
        assert summary.max_ping == timedelta(milliseconds=30)
        assert summary.avg_ping == timedelta(milliseconds=20)

    def test_only_failures_reports_zero_metrics(self, now):
        records = [
            make_result(now - timedelta(hours=2), error="no route"),
            make_result(now - timedelta(hours=1), error="no route"),
        ]

        summary = compute_summary(records, now, 80.0, 100.0)

        assert summary.total_tests == 2
        assert summary.min_download == 0
        assert summary.max_download == 0
        assert summary.avg_download == 0
        assert summary.min_ping == timedelta()

    def test_failed_records_are_low_speed_events(self, now):
        failed = make_result(now - timedelta(hours=1), error="no route")
        fast = make_result(now - timedelta(minutes=30), download=500, upload=500)

        summary = compute_summary([failed, fast], now, 80.0, 100.0)

        assert summary.low_speed_events == (failed,)

    def test_low_speed_events_keep_insertion_order(self, now):
        records = [
            make_result(now - timedelta(hours=4), download=10, upload=200),
            make_result(now - timedelta(hours=3), download=300, upload=200),
            make_result(now - timedelta(hours=2), download=200, upload=10),
        ]

        summary = compute_summary(records, now, 80.0, 100.0)

        assert summary.low_speed_events == (records[0], records[2])

    def test_low_speed_ignores_alert_flag(self, now):
        flagged_but_fast = make_result(now - timedelta(hours=1), download=500, upload=500, alert_sent=True)

        summary = compute_summary([flagged_but_fast], now, 80.0, 100.0)

        assert summary.alerts_count == 1
        assert summary.low_speed_events == ()

    def test_alerts_count_includes_all_flagged_records(self, now):
        records = [
            make_result(now - timedelta(hours=2), download=10, upload=10, alert_sent=True),
            make_result(now - timedelta(hours=1), download=10, upload=10, alert_sent=True),
            make_result(now - timedelta(minutes=5), download=10, upload=10),
        ]
        assert compute_summary(records, now, 80.0, 100.0).alerts_count == 2

    def test_ping_average_truncates_to_microseconds(self, now):
        records = [
            make_result(now - timedelta(hours=3), ping_ms=10),
            make_result(now - timedelta(hours=2), ping_ms=10),
            make_result(now - timedelta(hours=1), ping_ms=11),
        ]

        summary = compute_summary(records, now, 0.0, 0.0)

        assert summary.avg_ping == timedelta(microseconds=10333)

    def test_repeated_summaries_are_identical(self, now):
        history = ResultHistory()
        for h in range(1, 6):
            history.add(make_result(now - timedelta(hours=h), download=h * 20.5, upload=h * 11.1))

        first = history.summary(now, 80.0, 100.0)
        second = history.summary(now, 80.0, 100.0)

        assert first == second
        assert history.snapshot(now, timedelta(hours=24)) == history.snapshot(now, timedelta(hours=24))

    def test_custom_window(self, now):
        records = [
            make_result(now - timedelta(hours=3)),
            make_result(now - timedelta(minutes=30)),
        ]
        summary = compute_summary(records, now, 0.0, 0.0, window=timedelta(hours=1))
        assert summary.total_tests == 1
