"""Health snapshot models and the tri-state status derivation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

from infrawatch.inventory.registry import ServerDescriptor

GIB = 1024 ** 3

CPU_DEGRADED_PERCENT = 80.0
MEMORY_DEGRADED_PERCENT = 85.0
DISK_DEGRADED_PERCENT = 85.0


class StatusLevel(str, Enum):
    UP = "up"
    DEGRADED = "degraded"
    DOWN = "down"


@dataclass
class ServiceStatus:
    name: str
    is_up: bool
    error: str = ""
    job: str = ""
    port: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "is_up": self.is_up,
            "error": self.error or None,
            "port": self.port or None,
        }


@dataclass
class ServerStatus:
    """Snapshot of one server, produced fresh on every refresh and never patched."""

    descriptor: ServerDescriptor
    is_up: bool = False

    cpu: float = 0.0  # 0-100
    memory: float = 0.0  # 0-100
    memory_used_bytes: float = 0.0
    memory_total_bytes: float = 0.0
    disk: float = 0.0  # 0-100, root filesystem
    disk_used_bytes: float = 0.0
    disk_total_bytes: float = 0.0
    uptime: timedelta = field(default_factory=timedelta)

    # External reachability probe
    external_access: bool = False
    external_latency_ms: float = 0.0
    external_error: str = ""

    services: list[ServiceStatus] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def cloud_name(self) -> str:
        return self.descriptor.cloud_name

    @property
    def memory_used_gb(self) -> float:
        return self.memory_used_bytes / GIB

    @property
    def memory_total_gb(self) -> float:
        return self.memory_total_bytes / GIB

    @property
    def disk_used_gb(self) -> float:
        return self.disk_used_bytes / GIB

    @property
    def disk_total_gb(self) -> float:
        return self.disk_total_bytes / GIB

    @property
    def level(self) -> StatusLevel:
        return derive_status_level(self)

    def to_dict(self) -> dict[str, Any]:
        d = self.descriptor
        return {
            "id": d.id,
            "name": d.name,
            "icon": d.icon,
            "cloud_name": d.cloud_name,
            "cloud_icon": d.cloud_icon,
            "ip": d.ip,
            "status": self.level.value,
            "is_up": self.is_up,
            "cpu": round(self.cpu, 1),
            "memory": round(self.memory, 1),
            "memory_used_gb": round(self.memory_used_gb, 2),
            "memory_total_gb": round(self.memory_total_gb, 2),
            "disk": round(self.disk, 1),
            "disk_used_gb": round(self.disk_used_gb, 2),
            "disk_total_gb": round(self.disk_total_gb, 2),
            "uptime_seconds": int(self.uptime.total_seconds()),
            "external_access": self.external_access,
            "external_latency_ms": round(self.external_latency_ms, 1),
            "external_error": self.external_error or None,
            "services": [s.to_dict() for s in self.services],
        }


def derive_status_level(status: ServerStatus) -> StatusLevel:
    """Down > Degraded > Up."""
    if not status.is_up:
        return StatusLevel.DOWN
    if (
        status.cpu > CPU_DEGRADED_PERCENT
        or status.memory > MEMORY_DEGRADED_PERCENT
        or status.disk > DISK_DEGRADED_PERCENT
    ):
        return StatusLevel.DEGRADED
    if any(not svc.is_up for svc in status.services):
        return StatusLevel.DEGRADED
    return StatusLevel.UP
