"""httpx-based client for the Prometheus HTTP query API.

Every query is independent: a failure raises MetricsError for that query only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

import httpx

logger = logging.getLogger(__name__)


class MetricsError(Exception):
    """Raised when a single metrics query fails."""


class MetricNotFound(MetricsError):
    """Raised when a query succeeds but returns no samples."""


@dataclass
class QueryResult:
    instance: str
    value: float


class MetricsClient:
    """Synchronous client for instant queries against a Prometheus backend."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get(self, path: str, params: dict[str, str] | None = None) -> httpx.Response:
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            return client.get(f"{self._base_url}{path}", params=params)

    def query(self, expr: str) -> list[QueryResult]:
        """GET /api/v1/query — returns one (instance, value) pair per sample."""
        try:
            resp = self._get("/api/v1/query", params={"query": expr})
        except httpx.HTTPError as e:
            raise MetricsError(f"metrics query failed: {e}") from e

        if resp.status_code != 200:
            raise MetricsError(f"metrics backend returned status {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise MetricsError(f"failed to decode metrics response: {e}") from e

        if not isinstance(body, dict) or body.get("status") != "success":
            err_type = body.get("errorType", "") if isinstance(body, dict) else ""
            err = body.get("error", "") if isinstance(body, dict) else "malformed body"
            raise MetricsError(f"metrics error: {err_type} - {err}")

        results = []
        for r in (body.get("data") or {}).get("result") or []:
            value = r.get("value") or []
            if len(value) < 2 or not isinstance(value[1], str):
                continue
            try:
                parsed = float(value[1])
            except ValueError:
                continue
            results.append(QueryResult(instance=(r.get("metric") or {}).get("instance", ""), value=parsed))
        return results

    def query_single(self, expr: str) -> float:
        """Return the first sample value, or raise MetricNotFound."""
        results = self.query(expr)
        if not results:
            raise MetricNotFound(f"no results for query: {expr}")
        return results[0].value

    # ── Query templates ──────────────────────────────────────────────────

    def is_up(self, instance: str) -> bool:
        """up gauge for the node job; exact label first, then prefix match (ip:port labels)."""
        try:
            value = self.query_single(f'up{{instance="{instance}",job="node"}}')
        except MetricsError:
            value = self.query_single(f'up{{instance=~"{instance}.*",job="node"}}')
        return value == 1

    def cpu_percent(self, instance: str) -> float:
        return self.query_single(
            f'100 - avg(rate(node_cpu_seconds_total{{mode="idle",instance="{instance}"}}[5m]))*100'
        )

    def memory_percent(self, instance: str) -> float:
        return self.query_single(
            f'(1 - node_memory_MemAvailable_bytes{{instance="{instance}"}}'
            f'/node_memory_MemTotal_bytes{{instance="{instance}"}})*100'
        )

    def memory_bytes(self, instance: str) -> tuple[float, float]:
        """(used, total) memory in bytes."""
        total = self.query_single(f'node_memory_MemTotal_bytes{{instance="{instance}"}}')
        avail = self.query_single(f'node_memory_MemAvailable_bytes{{instance="{instance}"}}')
        return total - avail, total

    def disk_percent(self, instance: str) -> float:
        """Root filesystem usage."""
        return self.query_single(
            f'(1 - node_filesystem_avail_bytes{{instance="{instance}",mountpoint="/"}}'
            f'/node_filesystem_size_bytes{{instance="{instance}",mountpoint="/"}})*100'
        )

    def disk_bytes(self, instance: str) -> tuple[float, float]:
        """(used, total) root filesystem bytes."""
        total = self.query_single(f'node_filesystem_size_bytes{{instance="{instance}",mountpoint="/"}}')
        avail = self.query_single(f'node_filesystem_avail_bytes{{instance="{instance}",mountpoint="/"}}')
        return total - avail, total

    def uptime(self, instance: str) -> timedelta:
        seconds = self.query_single(
            f'node_time_seconds{{instance="{instance}"}} - node_boot_time_seconds{{instance="{instance}"}}'
        )
        return timedelta(seconds=int(seconds))

    def is_service_up(self, job: str, instance: str = "") -> bool:
        if instance:
            expr = f'up{{job="{job}",instance=~"{instance}.*"}}'
        else:
            expr = f'up{{job="{job}"}}'
        return self.query_single(expr) == 1

    def ping(self) -> None:
        """GET /-/healthy — raises MetricsError if the backend is not reachable."""
        try:
            resp = self._get("/-/healthy")
        except httpx.HTTPError as e:
            raise MetricsError(f"metrics backend not reachable: {e}") from e
        if resp.status_code != 200:
            raise MetricsError(f"metrics backend health check failed: status {resp.status_code}")
