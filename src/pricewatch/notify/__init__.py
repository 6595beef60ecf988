"""Notification sinks -- Telegram delivery and a log-only fallback."""

from pricewatch.notify.base import LogNotifier, Notifier
from pricewatch.notify.telegram import TelegramNotifier

__all__ = ["LogNotifier", "Notifier", "TelegramNotifier"]
