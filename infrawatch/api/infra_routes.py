"""API routes for infrastructure health.

Endpoints:
  GET  /api/infra                    — inventory overview (clouds + servers)
  GET  /api/infra/health             — fleet snapshot grouped by cloud (?force=true bypasses cache)
  GET  /api/infra/servers/{id}       — one server (?force=true bypasses cache)
  POST /api/infra/cache/invalidate   — drop cached snapshots
  GET  /api/infra/ping               — metrics backend pre-flight
  GET  /api/infra/ssh-stats          — per-endpoint SSH call statistics
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from infrawatch.health.checker import HealthChecker, ServerNotFoundError
from infrawatch.health.formatting import external_icon, format_uptime, status_icon
from infrawatch.health.models import ServerStatus
from infrawatch.inventory.registry import inventory_to_dict
from infrawatch.metrics.client import MetricsError

logger = logging.getLogger(__name__)

infra_router = APIRouter()

NOT_CONFIGURED: dict[str, Any] = {
    "configured": False,
    "message": "Infrastructure monitoring is not configured",
}


def _checker(request: Request) -> HealthChecker | None:
    return getattr(request.app.state, "health_checker", None)


def _status_dict(status: ServerStatus) -> dict[str, Any]:
    d = status.to_dict()
    d["status_icon"] = status_icon(status)
    d["external_icon"] = external_icon(status)
    d["uptime"] = format_uptime(status.uptime)
    return d


@infra_router.get("/infra")
def infra_overview(request: Request) -> dict[str, Any]:
    checker = _checker(request)
    if checker is None:
        return NOT_CONFIGURED
    return {"configured": True, **inventory_to_dict(checker.inventory)}


@infra_router.get("/infra/health")
def fleet_health(request: Request, force: bool = False) -> dict[str, Any]:
    """Fleet snapshot, clouds in configuration order."""
    checker = _checker(request)
    if checker is None:
        return NOT_CONFIGURED

    statuses = checker.check_all_force() if force else checker.check_all()

    by_cloud: dict[str, list[dict[str, Any]]] = {}
    for s in statuses:
        by_cloud.setdefault(s.cloud_name, []).append(_status_dict(s))

    clouds = [
        {"name": c.name, "icon": c.icon, "servers": by_cloud[c.name]}
        for c in checker.inventory.clouds
        if by_cloud.get(c.name)
    ]
    return {
        "configured": True,
        "clouds": clouds,
        "summary": {
            level: sum(1 for s in statuses if s.level.value == level)
            for level in ("up", "degraded", "down")
        },
        "cache_age_seconds": checker.cache.age(),
    }


@infra_router.get("/infra/servers/{server_id}")
def server_health(server_id: str, request: Request, force: bool = False) -> dict[str, Any]:
    checker = _checker(request)
    if checker is None:
        return NOT_CONFIGURED
    try:
        status = checker.check_server_force(server_id) if force else checker.check_server(server_id)
    except ServerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"configured": True, "server": _status_dict(status)}


@infra_router.post("/infra/cache/invalidate")
def invalidate_cache(request: Request) -> dict[str, Any]:
    checker = _checker(request)
    if checker is None:
        return NOT_CONFIGURED
    checker.invalidate_cache()
    return {"configured": True, "status": "cache invalidated"}


@infra_router.get("/infra/ping")
def ping_metrics(request: Request) -> dict[str, Any]:
    checker = _checker(request)
    if checker is None:
        return NOT_CONFIGURED
    try:
        checker.ping()
    except MetricsError as e:
        logger.warning("Metrics backend ping failed: %s", e)
        return {"configured": True, "ok": False, "error": str(e)}
    return {"configured": True, "ok": True, "error": None}


@infra_router.get("/infra/ssh-stats")
def ssh_stats(request: Request) -> dict[str, Any]:
    checker = _checker(request)
    if checker is None:
        return NOT_CONFIGURED
    return {
        "configured": True,
        "endpoints": {name: snap.to_dict() for name, snap in checker.ssh_stats().items()},
    }
