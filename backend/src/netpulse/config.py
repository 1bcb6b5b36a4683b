"""Configuration module for netpulse using Pydantic Settings."""

import re
from datetime import timedelta
from functools import lru_cache
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
    "s": timedelta(seconds=1),
    "ms": timedelta(milliseconds=1),
}


def parse_duration(value: Any) -> timedelta:
    """Parse a check interval.

    Accepts compound strings such as "30m", "1h30m" or "45s", and bare
    integers which are read as minutes.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(minutes=value)

    text = str(value).strip().lower()
    if text.isdigit():
        return timedelta(minutes=int(text))

    pos = 0
    total = timedelta()
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if not text or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


class TelegramSettings(BaseSettings):
    """Telegram bot settings."""

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    token: str = Field(min_length=1)
    chat_id: int = Field(validation_alias=AliasChoices("TELEGRAM_CHAT_ID", "CHAT_ID", "chat_id"))
    api_url: str = "https://api.telegram.org"
    # Outbound queue; messages are dropped when full
    queue_size: int = 100
    max_attempts: int = 5
    initial_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    # Long polling timeout for getUpdates
    poll_timeout_seconds: int = 30
    connect_retry_seconds: float = 5.0
    request_timeout_seconds: float = 10.0


class MonitorSettings(BaseSettings):
    """Thresholds and schedule for the monitor."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    download_threshold: float = Field(default=80.0, ge=0)
    upload_threshold: float = Field(default=100.0, ge=0)
    check_interval: timedelta = Field(
        default=timedelta(minutes=30),
        validation_alias=AliasChoices("CHECK_INTERVAL", "CHECK_INTERVAL_MIN", "check_interval"),
    )
    daily_report_hour: int = Field(default=8, ge=0, le=23)
    timezone: str = Field(
        default="Europe/Kyiv",
        validation_alias=AliasChoices("TZ", "timezone"),
    )
    # ~2 days of results at a 30 minute cadence
    history_size: int = Field(default=100, gt=0)
    initial_check_delay_seconds: float = 5.0

    @field_validator("check_interval", mode="before")
    @classmethod
    def _parse_check_interval(cls, value: Any) -> timedelta:
        interval = parse_duration(value)
        if interval <= timedelta():
            raise ValueError("check interval must be positive")
        return interval

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown time zone: {value!r}") from e
        return value

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class SpeedtestSettings(BaseSettings):
    """Speedtest configuration."""

    model_config = SettingsConfigDict(env_prefix="SPEEDTEST_", env_file=".env", extra="ignore")

    # Tool preference order - first available tool wins
    preferred_tools: list[str] = Field(
        default=["ookla-speedtest", "speedtest-cli"],
        description="Order of preference for speedtest tools",
    )
    timeout_seconds: int = Field(
        default=120,
        description="Timeout for a single speedtest run",
    )
    max_attempts: int = 3
    retry_delay_seconds: float = 5.0


class ServerSettings(BaseSettings):
    """Health/metrics HTTP server settings."""

    model_config = SettingsConfigDict(env_prefix="SERVER_", env_file=".env", extra="ignore")

    host: str = "0.0.0.0"
    port: int = 8080


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_", env_file=".env", extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "console"] = "console"
    # Include request correlation IDs
    correlation_id: bool = True

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Sub-configurations
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    speedtest: SpeedtestSettings = Field(default_factory=SpeedtestSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Application settings
    app_name: str = "netpulse"
    version: str = "1.0.0"

    def describe(self) -> dict[str, Any]:
        """Loggable view of the settings without the bot token."""
        return {
            "chat_id": self.telegram.chat_id,
            "download_threshold": self.monitor.download_threshold,
            "upload_threshold": self.monitor.upload_threshold,
            "check_interval_seconds": self.monitor.check_interval.total_seconds(),
            "daily_report_hour": self.monitor.daily_report_hour,
            "timezone": self.monitor.timezone,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded once and cached. To reload, call get_settings.cache_clear().
    Raises pydantic.ValidationError when required settings are missing.
    """
    return Settings()
