"""Pydantic models for remote agent responses and jump-host reports."""

from __future__ import annotations

import re
from datetime import timedelta

from pydantic import BaseModel, Field

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|ms|us|µs|ns|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 1e-3, "us": 1e-6, "µs": 1e-6, "ns": 1e-9}


def parse_duration(text: str) -> timedelta | None:
    """Parse duration text such as "72h3m10.5s"; None if it is not one."""
    text = text.strip()
    parts = _DURATION_PART.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        return None
    return timedelta(seconds=sum(float(n) * _UNIT_SECONDS[u] for n, u in parts))


# ── Remote agent /status ─────────────────────────────────────────────────────


class TrafficStats(BaseModel):
    direct_mb: float = 0.0
    warp_mb: float = 0.0
    home_mb: float = 0.0
    total_mb: float = 0.0


class HomeStats(BaseModel):
    """Metered residential-proxy budget."""

    limit_mb: int = 0
    used_mb: float = 0.0
    remaining_mb: float = 0.0
    cost_usd: float = 0.0


class AgentStatus(BaseModel):
    mode: str = ""
    uptime: str = ""  # duration text, e.g. "72h3m10.5s"
    connections: int = 0
    traffic: TrafficStats = Field(default_factory=TrafficStats)
    home: HomeStats = Field(default_factory=HomeStats)
    available_modes: list[str] = Field(default_factory=list)
    # Only present with ?check=true
    mode_healthy: bool | None = None
    mode_error: str | None = None

    def uptime_delta(self) -> timedelta | None:
        return parse_duration(self.uptime) if self.uptime else None


# ── Node exporter scrape ─────────────────────────────────────────────────────


class NodeMetrics(BaseModel):
    memory_used_bytes: float = 0.0
    memory_total_bytes: float = 0.0
    memory_used_percent: float = 0.0
    disk_used_bytes: float = 0.0
    disk_total_bytes: float = 0.0
    disk_used_percent: float = 0.0
    load1: float = 0.0


# ── Jump host ────────────────────────────────────────────────────────────────


class VpnStatus(BaseModel):
    server: str = ""
    mode: str = ""
    table: str = ""


class TrafficSummary(BaseModel):
    direct_mb: float = 0.0
    vpn_mb: float = 0.0
    total_mb: float = 0.0
    total_gb: float = 0.0


class EdgeTraffic(BaseModel):
    timestamp: str = ""
    summary: TrafficSummary = Field(default_factory=TrafficSummary)
    billing: dict[str, float] = Field(default_factory=dict)
