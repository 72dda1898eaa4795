"""Shared test fixtures."""

from __future__ import annotations

import threading
import time
from datetime import timedelta

import pytest

from infrawatch.health.checker import HealthChecker
from infrawatch.health.probe import ProbeResult
from infrawatch.inventory.registry import (
    CloudGroup,
    Inventory,
    JumpHost,
    ServerDescriptor,
    ServiceDescriptor,
    Upstream,
)
from infrawatch.metrics.client import MetricNotFound, MetricsError
from infrawatch.tunnel.client import TunnelError
from infrawatch.tunnel.models import AgentStatus, NodeMetrics
from infrawatch.tunnel.stats import CallStatistics, CallStatsSnapshot

GIB = 1024 ** 3


class FakeMetricsClient:
    """Stands in for MetricsClient; answers per instance label and counts fetches."""

    base_url = "http://prometheus.test:9090"

    def __init__(self, nodes: dict[str, dict] | None = None, delays: dict[str, float] | None = None) -> None:
        self.nodes = nodes or {}
        self.delays = delays or {}
        self.fetches = 0
        self.pinged = 0
        self._lock = threading.Lock()

    def _node(self, instance: str) -> dict:
        node = self.nodes.get(instance)
        if node is None:
            raise MetricNotFound(f"no results for {instance}")
        return node

    def is_up(self, instance: str) -> bool:
        with self._lock:
            self.fetches += 1
        time.sleep(self.delays.get(instance, 0))
        node = self._node(instance)
        if "raise" in node:
            raise node["raise"]
        return node.get("up", 0) == 1

    def _value(self, instance: str, key: str):
        node = self._node(instance)
        if key in node.get("fail", ()):
            raise MetricsError(f"metrics backend returned status 503 ({key})")
        return node[key]

    def cpu_percent(self, instance: str) -> float:
        return self._value(instance, "cpu")

    def memory_percent(self, instance: str) -> float:
        return self._value(instance, "memory")

    def memory_bytes(self, instance: str) -> tuple[float, float]:
        return self._value(instance, "memory_bytes")

    def disk_percent(self, instance: str) -> float:
        return self._value(instance, "disk")

    def disk_bytes(self, instance: str) -> tuple[float, float]:
        return self._value(instance, "disk_bytes")

    def uptime(self, instance: str) -> timedelta:
        return timedelta(seconds=self._value(instance, "uptime"))

    def is_service_up(self, job: str, instance: str = "") -> bool:
        jobs = self._node(instance).get("jobs", {})
        if job not in jobs:
            raise MetricNotFound(f"no results for job {job}")
        return jobs[job]

    def ping(self) -> None:
        self.pinged += 1


class FakeAgentClient:
    """Stands in for RemoteAgentClient."""

    def __init__(
        self,
        name: str = "germany",
        status: AgentStatus | None = None,
        node: NodeMetrics | None = None,
        error: str = "",
    ) -> None:
        self.name = name
        self.api_port = 9090
        self.status = status or AgentStatus(mode="direct", uptime="72h0m0s")
        self.node = node
        self.error = error
        self._stats = CallStatistics()

    def get_status(self) -> AgentStatus:
        if self.error:
            self._stats.record(5.0, self.error)
            raise TunnelError(self.error)
        self._stats.record(5.0)
        return self.status

    def get_node_metrics(self) -> NodeMetrics:
        if self.node is None:
            raise TunnelError("parse node metrics: no samples")
        return self.node

    def stats(self) -> CallStatsSnapshot:
        return self._stats.snapshot()


def healthy_node(**overrides) -> dict:
    node = {
        "up": 1,
        "cpu": 45.0,
        "memory": 45.0,
        "memory_bytes": (0.9 * GIB, 2 * GIB),
        "disk": 35.0,
        "disk_bytes": (3.5 * GIB, 10 * GIB),
        "uptime": 1234567,
        "jobs": {"nginx": True},
    }
    node.update(overrides)
    return node


def unreachable_probe(target: str, timeout: float) -> ProbeResult:
    return ProbeResult(False, 0.0, "connection failed: refused")


@pytest.fixture
def inventory() -> Inventory:
    web = ServerDescriptor(
        id="web-1",
        name="web-1",
        ip="10.0.0.11",
        cloud_name="Hetzner",
        prometheus_instance="web-1:9100",
        services=(ServiceDescriptor("nginx", job="nginx", port=443), ServiceDescriptor("node_exporter", port=9100)),
    )
    db = ServerDescriptor(
        id="db-1",
        name="db-1",
        ip="10.0.0.12",
        cloud_name="Hetzner",
        prometheus_instance="db-1:9100",
    )
    exit_de = ServerDescriptor(
        id="exit-de",
        name="Germany",
        ip="203.0.113.20",
        cloud_name="Edge",
        services=(ServiceDescriptor("switch-gate", port=9090), ServiceDescriptor("node_exporter", port=9100)),
    )
    return Inventory(
        enabled=True,
        prometheus_url="http://prometheus.test:9090",
        clouds=(
            CloudGroup("Hetzner", servers=(web, db)),
            CloudGroup("Edge", icon="🌐", servers=(exit_de,)),
        ),
        upstreams={"germany": Upstream(key="germany", name="Germany", ip="203.0.113.20", switch_gate=True)},
        jump_host=JumpHost(host="master@198.51.100.5"),
    )


@pytest.fixture
def metrics_client() -> FakeMetricsClient:
    return FakeMetricsClient({
        "web-1:9100": healthy_node(),
        "db-1:9100": healthy_node(jobs={}),
    })


@pytest.fixture
def agent_client() -> FakeAgentClient:
    return FakeAgentClient(node=NodeMetrics(
        memory_used_bytes=GIB,
        memory_total_bytes=2 * GIB,
        memory_used_percent=50.0,
        disk_used_bytes=5 * GIB,
        disk_total_bytes=20 * GIB,
        disk_used_percent=25.0,
        load1=0.25,
    ))


@pytest.fixture
def checker(inventory, metrics_client, agent_client) -> HealthChecker:
    return HealthChecker(
        inventory,
        metrics_client,
        agent_clients={"germany": agent_client},
        prober=unreachable_probe,
    )
