"""Outbound notifications — Telegram forwarding of remote-agent events."""

from infrawatch.notifications.telegram import TelegramNotifier, format_event

__all__ = ["TelegramNotifier", "format_event"]
