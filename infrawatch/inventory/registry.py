"""Inventory registry — loads infrastructure.yaml into immutable descriptors.

Single source of truth for which servers exist, how they are grouped by cloud,
and which of them sit behind the jump host with a remote agent.
The health checker, API and CLI all consume this.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CLOUD_ICON = "☁️"
DEFAULT_SERVER_ICON = "🖥️"
DEFAULT_AGENT_PORT = 9090
DEFAULT_JUMP_USER = "master"
DEFAULT_VPN_MODE_SCRIPT = "/usr/local/bin/vpn-mode.sh"


# ── Descriptors ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ServiceDescriptor:
    """A service declared on a server."""

    name: str
    job: str = ""  # metrics job name; empty = mirrors the server's up-state
    port: int = 0  # display only


@dataclass(frozen=True)
class ServerDescriptor:
    """Identity of a monitored server. Replaced wholesale on reconfiguration."""

    id: str
    name: str
    ip: str
    icon: str = DEFAULT_SERVER_ICON
    cloud_name: str = ""
    cloud_icon: str = DEFAULT_CLOUD_ICON
    prometheus_instance: str = ""
    external_check: str = ""  # https://host[:port][/path] | http://... | tcp://host:port
    services: tuple[ServiceDescriptor, ...] = ()

    @property
    def metrics_instance(self) -> str:
        """Instance label used in metric queries (falls back to the display name)."""
        return self.prometheus_instance or self.name


@dataclass(frozen=True)
class CloudGroup:
    name: str
    icon: str = DEFAULT_CLOUD_ICON
    servers: tuple[ServerDescriptor, ...] = ()


@dataclass(frozen=True)
class Upstream:
    """A remote host reachable through the jump host."""

    key: str
    name: str
    ip: str
    user: str = "root"
    switch_gate: bool = False  # runs the remote status agent
    switch_gate_port: int = DEFAULT_AGENT_PORT


@dataclass(frozen=True)
class JumpHost:
    """The SSH-reachable gateway in front of the upstreams."""

    host: str  # user@address or bare address
    key_path: str = ""
    vpn_mode_script: str = DEFAULT_VPN_MODE_SCRIPT

    @property
    def user(self) -> str:
        return self.host.rpartition("@")[0] or DEFAULT_JUMP_USER

    @property
    def address(self) -> str:
        return self.host.rpartition("@")[2]


@dataclass(frozen=True)
class Inventory:
    """Parsed inventory. Read-only for the checker."""

    enabled: bool = False
    prometheus_url: str = ""
    clouds: tuple[CloudGroup, ...] = ()
    upstreams: Mapping[str, Upstream] = field(default_factory=dict)
    jump_host: JumpHost | None = None

    @property
    def is_configured(self) -> bool:
        """True if infrastructure monitoring has something to monitor."""
        return self.enabled and any(c.servers for c in self.clouds)

    def servers(self) -> list[ServerDescriptor]:
        """All servers in cloud-then-declaration order."""
        return [s for c in self.clouds for s in c.servers]

    def get_server(self, server_id: str) -> ServerDescriptor | None:
        return next((s for s in self.servers() if s.id == server_id), None)

    def upstream_for_address(self, ip: str) -> str | None:
        """Upstream key whose address matches ``ip``."""
        return next((k for k, u in self.upstreams.items() if u.ip == ip), None)

    def is_tunnel_server(self, ip: str) -> bool:
        """True if ``ip`` belongs to an upstream flagged for the remote agent."""
        return any(u.ip == ip and u.switch_gate for u in self.upstreams.values())


# ── Registry ─────────────────────────────────────────────────────────────────


class InventoryRegistry:
    """Loads and caches the inventory from infrastructure.yaml."""

    def __init__(self, path: Path | str, default_prometheus_url: str = "") -> None:
        self._path = Path(path)
        self._default_prometheus_url = default_prometheus_url
        self._inventory = Inventory()
        self._loaded = False

    def load(self, force: bool = False) -> Inventory:
        """Parse the inventory file and return a fresh Inventory."""
        if self._loaded and not force:
            return self._inventory

        self._loaded = True
        if not self._path.exists():
            logger.warning("Inventory file not found: %s — monitoring disabled", self._path)
            self._inventory = Inventory()
            return self._inventory

        try:
            text = expand_env(self._path.read_text(encoding="utf-8"))
            raw = yaml.safe_load(text) or {}
        except Exception as e:
            logger.error("Failed to parse %s: %s", self._path, e)
            self._inventory = Inventory()
            return self._inventory

        if not isinstance(raw, dict):
            logger.error("Invalid inventory %s: top level is not a mapping", self._path)
            self._inventory = Inventory()
            return self._inventory

        self._inventory = parse_inventory(raw, self._default_prometheus_url)
        logger.info(
            "Loaded inventory: %d servers in %d clouds, %d upstreams",
            len(self._inventory.servers()),
            len(self._inventory.clouds),
            len(self._inventory.upstreams),
        )
        return self._inventory

    @property
    def inventory(self) -> Inventory:
        return self.load()

    def reload(self) -> Inventory:
        """Force reload from disk. Returns a new object; the old one is untouched."""
        return self.load(force=True)


# ── Parsers ──────────────────────────────────────────────────────────────────


_ENV_REF = re.compile(r"\$\{(\w+)\}|\$(\w+)")


def expand_env(text: str) -> str:
    """Replace $VAR and ${VAR} from the environment; undefined variables become empty."""
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1) or m.group(2), ""), text)


def parse_inventory(raw: dict[str, Any], default_prometheus_url: str = "") -> Inventory:
    infra = raw.get("infrastructure") or {}
    if not isinstance(infra, dict):
        logger.warning("Ignoring malformed infrastructure section")
        infra = {}

    clouds = []
    for c in infra.get("clouds") or []:
        if not isinstance(c, dict):
            logger.warning("Skipping malformed cloud entry: %r", c)
            continue
        name = c.get("name", "")
        icon = c.get("icon") or DEFAULT_CLOUD_ICON
        servers = []
        for s in c.get("servers") or []:
            if not isinstance(s, dict):
                logger.warning("Skipping malformed server entry in cloud %r: %r", name, s)
                continue
            try:
                servers.append(_parse_server(s, name, icon))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed server entry in cloud %r: %s", name, e)
        clouds.append(CloudGroup(name=name, icon=icon, servers=tuple(servers)))

    upstreams: dict[str, Upstream] = {}
    raw_upstreams = raw.get("upstreams") or {}
    if not isinstance(raw_upstreams, dict):
        logger.warning("Ignoring malformed upstreams section")
        raw_upstreams = {}
    for key, u in raw_upstreams.items():
        if not isinstance(u, dict):
            logger.warning("Skipping malformed upstream %r: not a mapping", key)
            continue
        try:
            upstreams[key] = _parse_upstream(key, u)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed upstream %r: %s", key, e)

    jump_host = None
    edge = raw.get("edge") or {}
    if isinstance(edge, dict) and edge.get("host"):
        jump_host = JumpHost(
            host=edge["host"],
            key_path=edge.get("key_path", ""),
            vpn_mode_script=edge.get("vpn_mode_script") or DEFAULT_VPN_MODE_SCRIPT,
        )

    return Inventory(
        enabled=bool(infra.get("enabled", bool(clouds))),
        prometheus_url=infra.get("prometheus_url") or default_prometheus_url,
        clouds=tuple(clouds),
        upstreams=upstreams,
        jump_host=jump_host,
    )


def _parse_server(raw: dict[str, Any], cloud_name: str, cloud_icon: str) -> ServerDescriptor:
    server_id = raw["id"]
    services = tuple(
        ServiceDescriptor(
            name=svc["name"],
            job=svc.get("job") or "",
            port=int(svc.get("port") or 0),
        )
        for svc in raw.get("services") or []
    )
    return ServerDescriptor(
        id=server_id,
        name=raw.get("name") or server_id,
        ip=raw.get("ip", ""),
        icon=raw.get("icon") or DEFAULT_SERVER_ICON,
        cloud_name=cloud_name,
        cloud_icon=cloud_icon,
        prometheus_instance=raw.get("prometheus_instance") or "",
        external_check=raw.get("external_check") or "",
        services=services,
    )


def _parse_upstream(key: str, raw: dict[str, Any]) -> Upstream:
    return Upstream(
        key=key,
        name=raw.get("name") or _capitalize(key),
        ip=raw["ip"],
        user=raw.get("user") or "root",
        switch_gate=bool(raw.get("switch_gate", False)),
        switch_gate_port=int(raw.get("switch_gate_port") or DEFAULT_AGENT_PORT),
    )


def _capitalize(s: str) -> str:
    return s[:1].upper() + s[1:]


def inventory_to_dict(inv: Inventory) -> dict[str, Any]:
    return {
        "enabled": inv.enabled,
        "clouds": [
            {
                "name": c.name,
                "icon": c.icon,
                "servers": [
                    {"id": s.id, "name": s.name, "icon": s.icon, "ip": s.ip}
                    for s in c.servers
                ],
            }
            for c in inv.clouds
        ],
    }
