"""Tests for the remote-agent webhook receiver and Telegram forwarding."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from infrawatch.api.server import create_app
from infrawatch.notifications.telegram import TelegramNotifier, format_event

SECRET = "s3cret"


class FakeNotifier:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.sent: list[str] = []

    async def send_message(self, text: str, parse_mode: str = "HTML") -> bool:
        self.sent.append(text)
        return self.ok


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def client(notifier):
    app = create_app()
    app.state.webhook_secret = SECRET
    app.state.notifier = notifier
    return TestClient(app)


MODE_CHANGED = {
    "event": "mode.changed",
    "timestamp": "2026-10-17T08:00:00Z",
    "source": "germany",
    "payload": {"from": "home", "to": "direct", "trigger": "limit_reached"},
}


# ── Receiver ─────────────────────────────────────────────────────────────────


class TestWebhookRoute:
    def test_missing_secret(self, client, notifier):
        resp = client.post("/webhook/switch-gate", json=MODE_CHANGED)
        assert resp.status_code == 401
        assert notifier.sent == []

    def test_wrong_secret(self, client):
        resp = client.post("/webhook/switch-gate", json=MODE_CHANGED, headers={"X-Webhook-Secret": "nope"})
        assert resp.status_code == 401

    def test_unset_secret_rejects_everything(self, notifier):
        app = create_app()
        app.state.webhook_secret = ""
        app.state.notifier = notifier
        resp = TestClient(app).post("/webhook/switch-gate", json=MODE_CHANGED, headers={"X-Webhook-Secret": ""})
        assert resp.status_code == 401

    def test_non_ascii_secret_header_rejected(self, client, notifier):
        resp = client.post("/webhook/switch-gate", json=MODE_CHANGED, headers={"X-Webhook-Secret": b"caf\xe9"})
        assert resp.status_code == 401
        assert notifier.sent == []

    def test_non_ascii_configured_secret(self, notifier):
        app = create_app()
        app.state.webhook_secret = "café-secret"
        app.state.notifier = notifier
        http = TestClient(app)
        wrong = http.post("/webhook/switch-gate", json=MODE_CHANGED, headers={"X-Webhook-Secret": "cafe-secret"})
        assert wrong.status_code == 401
        right = http.post(
            "/webhook/switch-gate",
            json=MODE_CHANGED,
            headers={"X-Webhook-Secret": "café-secret".encode("utf-8")},
        )
        assert right.status_code == 200

    def test_bad_json(self, client):
        resp = client.post(
            "/webhook/switch-gate",
            content="not json",
            headers={"X-Webhook-Secret": SECRET, "Content-Type": "application/json"},
        )
        assert resp.status_code == 400

    def test_missing_event_name(self, client):
        resp = client.post("/webhook/switch-gate", json={"source": "germany"}, headers={"X-Webhook-Secret": SECRET})
        assert resp.status_code == 400

    def test_forwards_known_event(self, client, notifier):
        resp = client.post("/webhook/switch-gate", json=MODE_CHANGED, headers={"X-Webhook-Secret": SECRET})
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "forwarded": True}
        assert len(notifier.sent) == 1
        assert "Germany VPS" in notifier.sent[0]
        assert "home → direct" in notifier.sent[0]

    def test_unknown_event_accepted_not_forwarded(self, client, notifier):
        body = {"event": "agent.restarted", "source": "germany"}
        resp = client.post("/webhook/switch-gate", json=body, headers={"X-Webhook-Secret": SECRET})
        assert resp.status_code == 200
        assert resp.json()["forwarded"] is False
        assert notifier.sent == []

    def test_send_failure_reported(self, client, notifier):
        notifier.ok = False
        resp = client.post("/webhook/switch-gate", json=MODE_CHANGED, headers={"X-Webhook-Secret": SECRET})
        assert resp.status_code == 200
        assert resp.json()["forwarded"] is False


# ── Formatting ───────────────────────────────────────────────────────────────


class TestFormatEvent:
    def test_mode_changed_by_limit(self):
        text = format_event("mode.changed", "germany", MODE_CHANGED["payload"])
        assert text.startswith("⚠️ <b>Germany VPS</b>")
        assert "Mode: home → direct" in text

    def test_mode_changed_manual(self):
        text = format_event("mode.changed", "germany", {"from": "direct", "to": "warp", "trigger": "manual"})
        assert text.startswith("🔄")

    def test_limit_reached(self):
        text = format_event("limit.reached", "germany", {"used_mb": 512.4, "limit_mb": 500, "switched_to": "direct"})
        assert "Home limit reached: 512/500 MB" in text
        assert "Auto-switched to: direct" in text

    def test_escapes_html(self):
        text = format_event("mode.changed", "<script>", {"from": "a&b", "to": "c"})
        assert "<script>" not in text
        assert "a&amp;b" in text

    def test_wrong_payload_types(self):
        text = format_event("limit.reached", "x", {"used_mb": "lots", "limit_mb": True})
        assert "0/0 MB" in text

    def test_unknown(self):
        assert format_event("something.else", "germany", {}) == ""


# ── Telegram notifier ────────────────────────────────────────────────────────


class TestTelegramNotifier:
    def test_disabled_without_credentials(self, monkeypatch):
        monkeypatch.setattr("infrawatch.notifications.telegram.settings.telegram_bot_token", "")
        monkeypatch.setattr("infrawatch.notifications.telegram.settings.telegram_chat_id", "")
        notifier = TelegramNotifier()
        assert notifier.enabled is False
        assert asyncio.run(notifier.send_message("hi")) is False

    def test_send(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        notifier = TelegramNotifier("123:abc", "42", transport=httpx.MockTransport(handler))
        assert asyncio.run(notifier.send_message("<b>hi</b>")) is True
        assert requests[0].url.path == "/bot123:abc/sendMessage"
        assert json.loads(requests[0].content) == {"chat_id": "42", "text": "<b>hi</b>", "parse_mode": "HTML"}

    def test_send_rejected(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(400, json={"ok": False}))
        notifier = TelegramNotifier("123:abc", "42", transport=transport)
        assert asyncio.run(notifier.send_message("hi")) is False
