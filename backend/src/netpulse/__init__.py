"""netpulse: internet speed monitor with Telegram notifications."""

__version__ = "1.0.0"
