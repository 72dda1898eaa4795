"""Inbound webhook from remote agents, forwarded as one Telegram message.

  POST /webhook/switch-gate   (X-Webhook-Secret header)
    200 — accepted (forwarded if the event type is known)
    400 — body is not a valid event
    401 — missing or wrong secret
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import BaseModel, Field, ValidationError

from infrawatch.notifications.telegram import format_event

logger = logging.getLogger(__name__)

webhook_router = APIRouter()


class WebhookEvent(BaseModel):
    event: str
    timestamp: datetime | None = None
    source: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)


@webhook_router.post("/webhook/switch-gate")
async def switch_gate_webhook(
    request: Request,
    x_webhook_secret: str = Header(default=""),
) -> dict[str, Any]:
    secret: str = getattr(request.app.state, "webhook_secret", "")
    client_host = request.client.host if request.client else "?"
    # Header values arrive latin-1 decoded; compare the raw bytes
    received = x_webhook_secret.encode("latin-1")
    if not secret or not hmac.compare_digest(received, secret.encode("utf-8")):
        logger.warning("Webhook unauthorized from %s", client_host)
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        event = WebhookEvent.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning("Webhook bad request: %s", e)
        raise HTTPException(status_code=400, detail="Bad Request")

    logger.info("Webhook received: %s from %s", event.event, event.source)

    text = format_event(event.event, event.source, event.payload)
    forwarded = False
    notifier = getattr(request.app.state, "notifier", None)
    if text and notifier is not None:
        forwarded = await notifier.send_message(text)
        if not forwarded:
            logger.error("Failed to forward webhook event %s", event.event)

    return {"ok": True, "forwarded": forwarded}
