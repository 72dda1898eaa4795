"""Signal sources for a server: the metrics backend or a tunneled remote agent.

Both implement ``fetch(server) -> ServerStatus`` and absorb their own failures
into status fields. Which one serves a server is a pure function of the inventory.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Protocol, TypeVar

from infrawatch.health.models import ServerStatus, ServiceStatus
from infrawatch.inventory.registry import Inventory, ServerDescriptor
from infrawatch.metrics.client import MetricsClient, MetricsError
from infrawatch.tunnel.client import RemoteAgentClient, TunnelError

logger = logging.getLogger(__name__)

T = TypeVar("T")

AGENT_SERVICE = "switch-gate"
NODE_EXPORTER_SERVICE = "node_exporter"


class StatusSource(Protocol):
    def fetch(self, server: ServerDescriptor) -> ServerStatus: ...


# ── Metrics backend ──────────────────────────────────────────────────────────


class MetricsSource:
    """Builds a snapshot from node-exporter series in the metrics backend."""

    def __init__(self, client: MetricsClient) -> None:
        self.client = client

    def fetch(self, server: ServerDescriptor) -> ServerStatus:
        status = ServerStatus(descriptor=server)
        instance = server.metrics_instance

        status.is_up = bool(self._absorb("up", server, self.client.is_up, instance))

        if status.is_up:
            status.cpu = self._absorb("cpu", server, self.client.cpu_percent, instance) or 0.0
            status.memory = self._absorb("memory", server, self.client.memory_percent, instance) or 0.0
            mem = self._absorb("memory bytes", server, self.client.memory_bytes, instance)
            if mem:
                status.memory_used_bytes, status.memory_total_bytes = mem
            status.disk = self._absorb("disk", server, self.client.disk_percent, instance) or 0.0
            disk = self._absorb("disk bytes", server, self.client.disk_bytes, instance)
            if disk:
                status.disk_used_bytes, status.disk_total_bytes = disk
            uptime = self._absorb("uptime", server, self.client.uptime, instance)
            if uptime is not None:
                status.uptime = uptime

        for svc in server.services:
            svc_status = ServiceStatus(name=svc.name, is_up=status.is_up, job=svc.job, port=svc.port)
            if svc.job:
                try:
                    svc_status.is_up = self.client.is_service_up(svc.job, instance)
                except MetricsError as e:
                    svc_status.is_up = False
                    svc_status.error = str(e)
            status.services.append(svc_status)

        return status

    @staticmethod
    def _absorb(label: str, server: ServerDescriptor, query: Callable[[str], T], instance: str) -> T | None:
        """Run one query; a failure leaves the field at its zero value."""
        try:
            return query(instance)
        except MetricsError as e:
            logger.debug("%s query failed for %s (%s): %s", label, server.id, instance, e)
            return None


# ── Remote agent over SSH ────────────────────────────────────────────────────


class RemoteAgentSource:
    """Builds a snapshot from the remote agent's /status and node metrics."""

    def __init__(self, inventory: Inventory, clients: Mapping[str, RemoteAgentClient]) -> None:
        self.inventory = inventory
        self.clients = clients

    def fetch(self, server: ServerDescriptor) -> ServerStatus:
        status = ServerStatus(descriptor=server)
        key = self.inventory.upstream_for_address(server.ip)
        client = self.clients.get(key) if key else None
        if client is None:
            status.services.append(ServiceStatus(
                name=AGENT_SERVICE, is_up=False, error=f"no tunnel client for upstream {key or server.ip}",
            ))
            return status

        try:
            agent = client.get_status()
        except TunnelError as e:
            logger.warning("Remote agent %s unreachable: %s", client.name, e)
            status.services.append(ServiceStatus(
                name=AGENT_SERVICE, is_up=False, error=str(e), port=client.api_port,
            ))
            return status

        status.is_up = True
        uptime = agent.uptime_delta()
        if uptime is not None:
            status.uptime = uptime

        got_metrics = False
        try:
            node = client.get_node_metrics()
        except TunnelError as e:
            logger.debug("Node metrics unavailable for %s: %s", client.name, e)
        else:
            got_metrics = True
            status.memory = node.memory_used_percent
            status.memory_used_bytes = node.memory_used_bytes
            status.memory_total_bytes = node.memory_total_bytes
            status.disk = node.disk_used_percent
            status.disk_used_bytes = node.disk_used_bytes
            status.disk_total_bytes = node.disk_total_bytes
            # load1 of 1.0 on a single-core VPS ~ 100% CPU
            status.cpu = min(node.load1 * 100, 100.0)

        for svc in server.services:
            if svc.name == NODE_EXPORTER_SERVICE:
                is_up = got_metrics
            else:
                # Agent and colocated services answered with it; anything else
                # is assumed up because the host itself responded.
                is_up = True
            status.services.append(ServiceStatus(name=svc.name, is_up=is_up, job=svc.job, port=svc.port))

        return status


def select_source(
    server: ServerDescriptor,
    inventory: Inventory,
    metrics: StatusSource,
    remote: StatusSource,
) -> StatusSource:
    """Remote agent for tunnel-flagged upstream addresses, metrics backend otherwise."""
    if inventory.is_tunnel_server(server.ip):
        return remote
    return metrics
