"""Single-shot Telegram forwarding for externally generated events.

Uses the Telegram Bot API directly via httpx (no heavy deps).
"""

from __future__ import annotations

import html
import logging
from typing import Any

import httpx

from infrawatch.config import settings

logger = logging.getLogger(__name__)

# Telegram API base
TELEGRAM_API = "https://api.telegram.org/bot{token}"


class TelegramNotifier:
    """Sends HTML-formatted messages to the configured chat."""

    def __init__(
        self,
        bot_token: str = "",
        chat_id: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.bot_token = bot_token or settings.telegram_bot_token
        self.chat_id = chat_id or settings.telegram_chat_id
        self._transport = transport
        self._enabled = bool(self.bot_token and self.chat_id)

        if self._enabled:
            logger.info("Telegram notifier enabled (chat_id=%s)", self.chat_id)
        else:
            logger.info("Telegram notifier disabled (no bot_token/chat_id)")

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def send_message(self, text: str, parse_mode: str = "HTML") -> bool:
        """Send a text message to the configured chat."""
        if not self._enabled:
            logger.debug("Telegram: skipping send (not configured)")
            return False

        url = f"{TELEGRAM_API.format(token=self.bot_token)}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": parse_mode,
        }

        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                resp = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Telegram send error: %s", exc)
            return False

        if resp.status_code != 200:
            logger.warning("Telegram send failed: %d %s", resp.status_code, resp.text[:200])
            return False
        logger.debug("Telegram: message sent")
        return True


# -- Event formatting ---------------------------------------------------------


def format_event(name: str, source: str, payload: dict[str, Any]) -> str:
    """Render a remote-agent event; empty string for events we do not forward."""
    source = html.escape(source[:1].upper() + source[1:])
    if name == "mode.changed":
        return _format_mode_changed(source, payload)
    if name == "limit.reached":
        return _format_limit_reached(source, payload)
    logger.warning("Unknown event type: %s", name)
    return ""


def _format_mode_changed(source: str, payload: dict[str, Any]) -> str:
    icon = "⚠️" if _str(payload, "trigger") == "limit_reached" else "🔄"
    return (
        f"{icon} <b>{source} VPS</b>\n\n"
        f"Mode: {_str(payload, 'from')} → {_str(payload, 'to')}"
    )


def _format_limit_reached(source: str, payload: dict[str, Any]) -> str:
    return (
        f"⚠️ <b>{source} VPS</b>\n\n"
        f"Home limit reached: {_float(payload, 'used_mb'):.0f}/{_float(payload, 'limit_mb'):.0f} MB\n"
        f"Auto-switched to: {_str(payload, 'switched_to')}"
    )


def _str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return html.escape(value) if isinstance(value, str) else ""


def _float(payload: dict[str, Any], key: str) -> float:
    value = payload.get(key)
    if isinstance(value, bool):
        return 0.0
    return float(value) if isinstance(value, (int, float)) else 0.0
