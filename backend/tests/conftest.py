"""Shared fixtures for netpulse tests."""

from datetime import datetime, timezone

import pytest

from netpulse.config import MonitorSettings, SpeedtestSettings, TelegramSettings


@pytest.fixture()
def now() -> datetime:
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def monitor_settings() -> MonitorSettings:
    return MonitorSettings(
        _env_file=None,
        download_threshold=80.0,
        upload_threshold=100.0,
        timezone="UTC",
    )


@pytest.fixture()
def telegram_settings() -> TelegramSettings:
    return TelegramSettings(
        _env_file=None,
        token="123:abc",
        chat_id=42,
        initial_backoff_seconds=0.01,
        max_backoff_seconds=0.04,
        connect_retry_seconds=0.01,
        queue_size=3,
    )


@pytest.fixture()
def speedtest_settings() -> SpeedtestSettings:
    return SpeedtestSettings(_env_file=None, retry_delay_seconds=0, max_attempts=3)
