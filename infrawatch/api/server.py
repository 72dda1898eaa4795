"""FastAPI server exposing the health checker and the webhook receiver."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from infrawatch.api.infra_routes import infra_router
from infrawatch.api.webhook_routes import webhook_router
from infrawatch.config import settings
from infrawatch.health.checker import HealthChecker
from infrawatch.inventory.registry import InventoryRegistry
from infrawatch.notifications.telegram import TelegramNotifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared resources on startup."""
    # Inventory
    registry = InventoryRegistry(settings.inventory_path, settings.prometheus_url)
    inventory = registry.load()
    app.state.registry = registry

    # Health checker (absent = monitoring not configured)
    if inventory.is_configured:
        app.state.health_checker = HealthChecker.from_settings(inventory, settings)
        logger.info(
            "Health checker ready: %d servers, metrics at %s",
            len(inventory.servers()),
            app.state.health_checker.metrics_client.base_url,
        )
    else:
        app.state.health_checker = None
        logger.info("Infrastructure monitoring not configured — health endpoints informational only")

    # Notifications + webhook
    app.state.notifier = TelegramNotifier()
    app.state.webhook_secret = settings.webhook_secret
    if not settings.webhook_secret:
        logger.warning("WEBHOOK_SECRET not set — webhook receiver will reject all requests")

    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="infrawatch - Infrastructure Health",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(infra_router, prefix="/api")
    app.include_router(webhook_router)

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
