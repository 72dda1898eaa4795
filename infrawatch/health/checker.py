"""Health checker — merges per-server signals into snapshots and caches the fleet.

For each configured server: pick a source (metrics backend or tunneled remote
agent), fetch, run the external reachability probe, and assemble a ServerStatus.
Source failures are encoded into status fields; the only error raised to callers
is an unknown server id.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor

from infrawatch.config import Settings
from infrawatch.health.cache import DEFAULT_CACHE_TTL, StatusCache
from infrawatch.health.models import ServerStatus, ServiceStatus
from infrawatch.health.probe import DEFAULT_TIMEOUT, ProbeResult, probe
from infrawatch.health.sources import MetricsSource, RemoteAgentSource, StatusSource, select_source
from infrawatch.inventory.registry import Inventory, ServerDescriptor
from infrawatch.metrics.client import MetricsClient
from infrawatch.tunnel.client import JumpHostClient, RemoteAgentClient, TunnelError
from infrawatch.tunnel.stats import CallStatsSnapshot

logger = logging.getLogger(__name__)


class ServerNotFoundError(LookupError):
    """Raised when a server id is not in the inventory."""

    def __init__(self, server_id: str) -> None:
        self.server_id = server_id
        super().__init__(f"server not found: {server_id}")


class HealthChecker:
    """Fleet health with a bounded-staleness cache.

    The refresh itself runs outside the cache lock, so two concurrent cache
    misses may both refresh; the later swap wins.
    """

    def __init__(
        self,
        inventory: Inventory,
        metrics_client: MetricsClient,
        agent_clients: Mapping[str, RemoteAgentClient] | None = None,
        jump_client: JumpHostClient | None = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        max_workers: int = 4,
        probe_timeout: float = DEFAULT_TIMEOUT,
        prober: Callable[[str, float], ProbeResult] = probe,
        cache: StatusCache | None = None,
    ) -> None:
        self._inventory = inventory
        self.metrics_client = metrics_client
        self.agent_clients = dict(agent_clients or {})
        self.jump_client = jump_client
        self.max_workers = max(1, max_workers)
        self.probe_timeout = probe_timeout
        self._prober = prober
        self._cache = cache or StatusCache(ttl=cache_ttl)
        self._metrics_source: StatusSource = MetricsSource(metrics_client)
        self._remote_source: StatusSource = RemoteAgentSource(inventory, self.agent_clients)

    @classmethod
    def from_settings(cls, inventory: Inventory, settings: Settings) -> HealthChecker:
        """Wire clients for every tunnel-flagged upstream and the jump host."""
        metrics = MetricsClient(
            inventory.prometheus_url or settings.prometheus_url,
            timeout=settings.metrics_timeout,
        )
        agent_clients, jump_client = build_tunnel_clients(inventory, settings)
        return cls(
            inventory,
            metrics,
            agent_clients=agent_clients,
            jump_client=jump_client,
            cache_ttl=settings.health_cache_ttl,
            max_workers=settings.health_max_workers,
            probe_timeout=settings.probe_timeout,
        )

    @property
    def inventory(self) -> Inventory:
        return self._inventory

    @property
    def cache(self) -> StatusCache:
        return self._cache

    # ── Public queries ───────────────────────────────────────────────────

    def check_all(self) -> list[ServerStatus]:
        """All servers in cloud-then-declaration order; cached if fresh."""
        cached = self._cache.get_all(s.id for s in self._inventory.servers())
        if cached is not None:
            return cached
        return self._refresh_all()

    def check_all_force(self) -> list[ServerStatus]:
        return self._refresh_all()

    def check_server(self, server_id: str) -> ServerStatus:
        """One server; served from the fleet cache while it is fresh."""
        cached = self._cache.get(server_id)
        if cached is not None:
            return cached
        return self.check_server_force(server_id)

    def check_server_force(self, server_id: str) -> ServerStatus:
        """Fresh fetch for one server. Does not touch the fleet cache."""
        server = self._inventory.get_server(server_id)
        if server is None:
            raise ServerNotFoundError(server_id)
        return self._check_server_safe(server)

    def invalidate_cache(self) -> None:
        self._cache.invalidate()
        logger.debug("Health cache invalidated")

    def ping(self) -> None:
        """Pre-flight check of the metrics backend; raises MetricsError if unreachable."""
        self.metrics_client.ping()

    def ssh_stats(self) -> dict[str, CallStatsSnapshot]:
        """Call statistics per remote endpoint (jump host first)."""
        stats: dict[str, CallStatsSnapshot] = {}
        if self.jump_client is not None:
            stats[self.jump_client.name] = self.jump_client.stats()
        for name, client in self.agent_clients.items():
            stats[name] = client.stats()
        return stats

    def reconfigure(
        self,
        inventory: Inventory,
        agent_clients: Mapping[str, RemoteAgentClient] | None = None,
    ) -> None:
        """Swap in a new inventory wholesale and drop all cached snapshots."""
        self._inventory = inventory
        if agent_clients is not None:
            self.agent_clients = dict(agent_clients)
        self._remote_source = RemoteAgentSource(inventory, self.agent_clients)
        self._cache.invalidate()
        logger.info("Health checker reconfigured: %d servers", len(inventory.servers()))

    # ── Refresh ──────────────────────────────────────────────────────────

    def _refresh_all(self) -> list[ServerStatus]:
        servers = self._inventory.servers()
        if not servers:
            return []

        workers = min(self.max_workers, len(servers))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="health") as pool:
            # map() yields in submission order, i.e. configuration order
            statuses = list(pool.map(self._check_server_safe, servers))

        self._cache.replace(statuses)
        logger.info(
            "Health refresh: %d servers, %d down",
            len(statuses),
            sum(1 for s in statuses if not s.is_up),
        )
        return statuses

    def _check_server_safe(self, server: ServerDescriptor) -> ServerStatus:
        try:
            return self._check_server(server)
        except Exception as e:
            logger.exception("Health check error: %s", server.id)
            status = ServerStatus(descriptor=server)
            status.services.append(ServiceStatus(name="health-check", is_up=False, error=str(e)))
            return status

    def _check_server(self, server: ServerDescriptor) -> ServerStatus:
        source = select_source(server, self._inventory, self._metrics_source, self._remote_source)
        status = source.fetch(server)

        if server.external_check:
            result = self._prober(server.external_check, self.probe_timeout)
            status.external_access = result.reachable
            status.external_latency_ms = result.latency_ms
            status.external_error = result.error or ""
        else:
            # No probe configured: reachability mirrors the up-state
            status.external_access = status.is_up

        logger.debug(
            "Check %s: %s (up=%s, external=%s)",
            server.id, status.level.value, status.is_up, status.external_access,
        )
        return status


def build_tunnel_clients(
    inventory: Inventory,
    settings: Settings,
) -> tuple[dict[str, RemoteAgentClient], JumpHostClient | None]:
    """Clients for the jump host and every agent-flagged upstream.

    A client that cannot be built (no key, no agent) is left out; its server
    then reports down.
    """
    jump = inventory.jump_host
    if jump is None:
        return {}, None

    jump_client = None
    try:
        jump_client = JumpHostClient(
            jump,
            key_path=settings.ssh_key_path,
            connect_timeout=settings.ssh_connect_timeout,
            command_timeout=settings.ssh_command_timeout,
        )
    except TunnelError as e:
        logger.warning("Jump host client unavailable: %s", e)

    agent_clients: dict[str, RemoteAgentClient] = {}
    for key, upstream in inventory.upstreams.items():
        if not upstream.switch_gate:
            continue
        try:
            agent_clients[key] = RemoteAgentClient(
                upstream,
                jump,
                key_path=settings.ssh_key_path,
                connect_timeout=settings.ssh_connect_timeout,
                command_timeout=settings.ssh_command_timeout,
                bulk_timeout=settings.ssh_bulk_timeout,
            )
        except TunnelError as e:
            logger.warning("Remote agent client for %s unavailable: %s", key, e)
    return agent_clients, jump_client
