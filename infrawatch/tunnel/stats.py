"""Per-endpoint SSH call statistics (in-memory, reset only on restart)."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class CallStatsSnapshot:
    success_count: int = 0
    error_count: int = 0
    last_latency_ms: float = 0.0
    last_error: str = ""
    last_error_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success_count": self.success_count,
            "error_count": self.error_count,
            "last_latency_ms": round(self.last_latency_ms, 1),
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
        }


class CallStatistics:
    """Thread-safe counters updated on every remote call."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._success_count = 0
        self._error_count = 0
        self._last_latency_ms = 0.0
        self._last_error = ""
        self._last_error_at: datetime | None = None

    def record(self, latency_ms: float, error: BaseException | str | None = None) -> None:
        """Latency is recorded unconditionally; errors overwrite the last-error pair."""
        with self._lock:
            self._last_latency_ms = latency_ms
            if error is None:
                self._success_count += 1
            else:
                self._error_count += 1
                self._last_error = str(error)
                self._last_error_at = datetime.now(timezone.utc)

    def snapshot(self) -> CallStatsSnapshot:
        with self._lock:
            return CallStatsSnapshot(
                success_count=self._success_count,
                error_count=self._error_count,
                last_latency_ms=self._last_latency_ms,
                last_error=self._last_error,
                last_error_at=self._last_error_at,
            )
