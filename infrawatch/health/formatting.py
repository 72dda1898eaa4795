"""Text helpers shared by the CLI and API for rendering health snapshots."""

from __future__ import annotations

from datetime import timedelta

from infrawatch.health.models import ServerStatus, StatusLevel

_STATUS_ICONS = {
    StatusLevel.UP: "🟢",
    StatusLevel.DEGRADED: "🟡",
    StatusLevel.DOWN: "🛑",
}

_MODE_ICONS = {
    "direct": "🖥️",
    "warp": "☁️",
    "home": "🏠",
}


def format_uptime(uptime: timedelta) -> str:
    """'14d 6h 56m', '6h 56m' or '56m'; 'unknown' when no uptime is known."""
    total = int(uptime.total_seconds())
    if total <= 0:
        return "unknown"
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_progress_bar(percent: float, width: int = 10) -> str:
    """Fixed-width bar, input clamped to [0, 100]."""
    percent = min(max(percent, 0.0), 100.0)
    filled = int(percent / 100 * width)
    return "▓" * filled + "░" * (width - filled)


def status_icon(status: ServerStatus) -> str:
    return _STATUS_ICONS.get(status.level, "⚪")


def external_icon(status: ServerStatus) -> str:
    return "📶" if status.external_access else "❌"


def mode_icon(mode: str) -> str:
    return _MODE_ICONS.get(mode.lower(), "❓")
