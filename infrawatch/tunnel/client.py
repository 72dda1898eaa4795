"""SSH clients for the jump host and for remote agents behind it.

Every call shells out to the OpenSSH client and opens a fresh connection
(no pooling). Remote agents are reached in two hops: a ProxyCommand to the jump
host forwards the TCP stream to the target, so the target session is
authenticated end-to-end with the same key or the caller's ssh-agent.

All methods return typed responses or raise TunnelError.
"""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path

from prometheus_client.parser import text_string_to_metric_families
from pydantic import ValidationError

from infrawatch.inventory.registry import JumpHost, Upstream
from infrawatch.tunnel.models import AgentStatus, EdgeTraffic, NodeMetrics, VpnStatus
from infrawatch.tunnel.stats import CallStatistics, CallStatsSnapshot

logger = logging.getLogger(__name__)

SSH_BINARY = "ssh"
SSH_OPTS = [
    "-o", "BatchMode=yes",
    "-o", "StrictHostKeyChecking=no",
    "-o", "UserKnownHostsFile=/dev/null",
    "-o", "LogLevel=ERROR",
]
NODE_EXPORTER_PORT = 9100
AGENT_SOCKS_PORT = 18388


class TunnelError(Exception):
    """Raised when a tunneled call fails (dial, auth, command or parse)."""


class _SSHClient(ABC):
    """Shared exec + statistics for single- and two-hop clients."""

    def __init__(
        self,
        key_path: str = "",
        connect_timeout: int = 10,
        command_timeout: float = 30.0,
    ) -> None:
        if key_path:
            if not Path(key_path).expanduser().is_file():
                raise TunnelError(f"load key file: {key_path} not found")
        elif not os.environ.get("SSH_AUTH_SOCK"):
            raise TunnelError("no authentication methods available")
        self._key_path = str(Path(key_path).expanduser()) if key_path else ""
        self._connect_timeout = connect_timeout
        self._command_timeout = command_timeout
        self._stats = CallStatistics()

    def stats(self) -> CallStatsSnapshot:
        return self._stats.snapshot()

    def _auth_args(self) -> list[str]:
        args = [*SSH_OPTS, "-o", f"ConnectTimeout={self._connect_timeout}"]
        if self._key_path:
            args += ["-i", self._key_path]
        return args

    @abstractmethod
    def _destination_args(self) -> list[str]:
        """ssh arguments that select the far side (options + user@host)."""

    def exec(self, command: str, timeout: float | None = None) -> str:
        """Run ``command`` on the far side and return its stdout."""
        t0 = time.perf_counter()
        try:
            output = self._run(command, timeout or self._command_timeout)
        except TunnelError as e:
            self._stats.record((time.perf_counter() - t0) * 1000, e)
            raise
        self._stats.record((time.perf_counter() - t0) * 1000)
        return output

    def _run(self, command: str, timeout: float) -> str:
        argv = [SSH_BINARY, *self._auth_args(), *self._destination_args(), command]
        try:
            result = subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise TunnelError(f"ssh command timed out after {timeout:.0f}s") from e
        except OSError as e:
            raise TunnelError(f"ssh dial: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise TunnelError(f"run command: exit status {result.returncode} (stderr: {stderr})")
        return result.stdout


# ── Jump host ────────────────────────────────────────────────────────────────


class JumpHostClient(_SSHClient):
    """Single-hop client for the jump host itself."""

    def __init__(
        self,
        jump: JumpHost,
        key_path: str = "",
        connect_timeout: int = 10,
        command_timeout: float = 30.0,
    ) -> None:
        super().__init__(
            key_path=key_path or jump.key_path,
            connect_timeout=connect_timeout,
            command_timeout=command_timeout,
        )
        self._jump = jump

    @property
    def name(self) -> str:
        return self._jump.address

    def _destination_args(self) -> list[str]:
        return [f"{self._jump.user}@{self._jump.address}"]

    def get_vpn_status(self) -> VpnStatus:
        """Current VPN routing as reported by the mode script."""
        output = self.exec(f"{self._jump.vpn_mode_script} status")
        return parse_vpn_status(output)

    def get_external_ip(self) -> str:
        return self.exec("curl -s --max-time 5 api.ipify.org").strip()

    def get_traffic(self) -> EdgeTraffic:
        output = self.exec("/usr/local/bin/yc-traffic.sh")
        try:
            return EdgeTraffic(**json.loads(output))
        except (ValueError, TypeError, ValidationError) as e:
            raise TunnelError(f"parse traffic: {e}") from e


# ── Remote agent (two hops) ──────────────────────────────────────────────────


class RemoteAgentClient(_SSHClient):
    """Two-hop client for an upstream running the remote status agent."""

    def __init__(
        self,
        upstream: Upstream,
        jump: JumpHost,
        key_path: str = "",
        connect_timeout: int = 10,
        command_timeout: float = 30.0,
        bulk_timeout: float = 60.0,
    ) -> None:
        super().__init__(
            key_path=key_path or jump.key_path,
            connect_timeout=connect_timeout,
            command_timeout=command_timeout,
        )
        self._upstream = upstream
        self._jump = jump
        self._bulk_timeout = bulk_timeout

    @property
    def name(self) -> str:
        return self._upstream.key

    @property
    def api_port(self) -> int:
        return self._upstream.switch_gate_port

    def _destination_args(self) -> list[str]:
        proxy = shlex.join([
            SSH_BINARY,
            *self._auth_args(),
            "-W", "%h:%p",
            f"{self._jump.user}@{self._jump.address}",
        ])
        return ["-o", f"ProxyCommand={proxy}", f"{self._upstream.user}@{self._upstream.ip}"]

    def get_status(self) -> AgentStatus:
        """GET /status on the agent (fast, no mode health check)."""
        return self._fetch_status(f"curl -s http://127.0.0.1:{self.api_port}/status")

    def get_status_with_check(self) -> AgentStatus:
        """GET /status?check=true — adds mode_healthy / mode_error, several seconds slower."""
        return self._fetch_status(
            f"curl -s 'http://127.0.0.1:{self.api_port}/status?check=true'",
            timeout=self._bulk_timeout,
        )

    def _fetch_status(self, command: str, timeout: float | None = None) -> AgentStatus:
        output = self.exec(command, timeout=timeout)
        try:
            return AgentStatus(**json.loads(output))
        except (ValueError, TypeError, ValidationError) as e:
            raise TunnelError(f"parse status: {e}") from e

    def get_node_metrics(self) -> NodeMetrics:
        """Scrape the node exporter on the far side."""
        output = self.exec(
            f"curl -s http://127.0.0.1:{NODE_EXPORTER_PORT}/metrics",
            timeout=self._bulk_timeout,
        )
        return parse_node_metrics(output)

    def get_external_ip(self) -> str:
        """Egress IP as seen through the agent's local SOCKS proxy."""
        output = self.exec(f"curl -s -x socks5h://127.0.0.1:{AGENT_SOCKS_PORT} --max-time 10 ifconfig.me")
        return output.strip()

    def restart(self) -> None:
        self.exec("systemctl restart switch-gate")
        logger.info("Restarted remote agent on %s", self.name)


# ── Parsers ──────────────────────────────────────────────────────────────────


def parse_node_metrics(text: str) -> NodeMetrics:
    """Extract memory, root-filesystem and load figures from exporter text."""
    values: dict[str, float] = {}
    try:
        for family in text_string_to_metric_families(text):
            for sample in family.samples:
                if sample.name.startswith("node_filesystem_") and sample.labels.get("mountpoint") != "/":
                    continue
                values.setdefault(sample.name, float(sample.value))
    except (ValueError, IndexError) as e:
        raise TunnelError(f"parse node metrics: {e}") from e

    if not values:
        raise TunnelError("parse node metrics: no samples")

    mem_total = values.get("node_memory_MemTotal_bytes", 0.0)
    mem_used = mem_total - values.get("node_memory_MemAvailable_bytes", mem_total)
    disk_total = values.get("node_filesystem_size_bytes", 0.0)
    disk_used = disk_total - values.get("node_filesystem_avail_bytes", disk_total)

    return NodeMetrics(
        memory_used_bytes=mem_used,
        memory_total_bytes=mem_total,
        memory_used_percent=mem_used / mem_total * 100 if mem_total else 0.0,
        disk_used_bytes=disk_used,
        disk_total_bytes=disk_total,
        disk_used_percent=disk_used / disk_total * 100 if disk_total else 0.0,
        load1=values.get("node_load1", 0.0),
    )


def parse_vpn_status(output: str) -> VpnStatus:
    fields: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.strip().partition("=")
        if sep and key.strip() in ("SERVER", "MODE", "TABLE"):
            fields[key.strip().lower()] = value.strip()
    return VpnStatus(**fields)
