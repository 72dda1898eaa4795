"""Fleet-wide snapshot cache with a single refresh timestamp."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable

from infrawatch.health.models import ServerStatus

DEFAULT_CACHE_TTL = 60.0


class StatusCache:
    """serverID -> ServerStatus, written only as a whole refresh pass.

    Either empty or every entry came from the same pass; there is no per-server TTL.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, ServerStatus] = {}
        self._refreshed_at: float | None = None

    def _valid(self) -> bool:
        if not self._entries or self._refreshed_at is None:
            return False
        return self._clock() - self._refreshed_at < self.ttl

    def is_valid(self) -> bool:
        with self._lock:
            return self._valid()

    def get_all(self, order: Iterable[str]) -> list[ServerStatus] | None:
        """Cached snapshots in ``order``, or None if the cache is stale."""
        with self._lock:
            if not self._valid():
                return None
            return [self._entries[sid] for sid in order if sid in self._entries]

    def get(self, server_id: str) -> ServerStatus | None:
        """Cached snapshot for one server, or None if stale or absent."""
        with self._lock:
            if not self._valid():
                return None
            return self._entries.get(server_id)

    def replace(self, statuses: Iterable[ServerStatus]) -> None:
        """Swap in a complete refresh pass and stamp it."""
        entries = {s.id: s for s in statuses}
        with self._lock:
            self._entries = entries
            self._refreshed_at = self._clock()

    def invalidate(self) -> None:
        with self._lock:
            self._entries = {}
            self._refreshed_at = None

    def age(self) -> float | None:
        """Seconds since the last refresh pass, None if empty."""
        with self._lock:
            if self._refreshed_at is None:
                return None
            return self._clock() - self._refreshed_at
