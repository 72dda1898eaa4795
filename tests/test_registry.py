"""Tests for the inventory registry (YAML loading and parsing)."""

from __future__ import annotations

from pathlib import Path

import pytest

from infrawatch.inventory.registry import (
    DEFAULT_AGENT_PORT,
    DEFAULT_CLOUD_ICON,
    DEFAULT_SERVER_ICON,
    DEFAULT_VPN_MODE_SCRIPT,
    InventoryRegistry,
    expand_env,
    inventory_to_dict,
    parse_inventory,
)

SAMPLE = """\
infrastructure:
  enabled: true
  prometheus_url: http://prom.internal:9090
  clouds:
    - name: Hetzner
      icon: "🇩🇪"
      servers:
        - id: web-1
          name: Web One
          ip: 10.0.0.11
          prometheus_instance: web-1:9100
          external_check: https://web-1.example.com/health
          services:
            - name: nginx
              job: nginx
              port: 443
        - id: db-1
          ip: 10.0.0.12
    - name: Edge
      servers:
        - id: exit-de
          ip: 203.0.113.20
upstreams:
  germany:
    ip: 203.0.113.20
    switch_gate: true
  backup:
    name: Backup
    ip: 203.0.113.30
    user: admin
edge:
  host: master@198.51.100.5
  key_path: ${INFRAWATCH_TEST_KEY}
"""


@pytest.fixture
def inventory_file(tmp_path, monkeypatch) -> Path:
    monkeypatch.setenv("INFRAWATCH_TEST_KEY", "/keys/edge")
    path = tmp_path / "infrastructure.yaml"
    path.write_text(SAMPLE, encoding="utf-8")
    return path


class TestRegistryLoad:
    def test_load(self, inventory_file) -> None:
        inv = InventoryRegistry(inventory_file).load()
        assert inv.is_configured
        assert inv.prometheus_url == "http://prom.internal:9090"
        assert [s.id for s in inv.servers()] == ["web-1", "db-1", "exit-de"]

    def test_server_fields(self, inventory_file) -> None:
        inv = InventoryRegistry(inventory_file).load()
        web = inv.get_server("web-1")
        assert web.name == "Web One"
        assert web.cloud_name == "Hetzner"
        assert web.cloud_icon == "🇩🇪"
        assert web.metrics_instance == "web-1:9100"
        assert web.services[0].job == "nginx"
        assert web.services[0].port == 443

    def test_defaults(self, inventory_file) -> None:
        inv = InventoryRegistry(inventory_file).load()
        db = inv.get_server("db-1")
        assert db.name == "db-1"
        assert db.icon == DEFAULT_SERVER_ICON
        assert db.metrics_instance == "db-1"
        assert db.external_check == ""
        assert inv.clouds[1].icon == DEFAULT_CLOUD_ICON

    def test_upstreams(self, inventory_file) -> None:
        inv = InventoryRegistry(inventory_file).load()
        germany = inv.upstreams["germany"]
        assert germany.name == "Germany"
        assert germany.user == "root"
        assert germany.switch_gate_port == DEFAULT_AGENT_PORT
        assert inv.upstreams["backup"].user == "admin"
        assert inv.upstream_for_address("203.0.113.30") == "backup"
        assert inv.is_tunnel_server("203.0.113.20")
        assert not inv.is_tunnel_server("203.0.113.30")
        assert not inv.is_tunnel_server("10.0.0.11")

    def test_jump_host_env_expansion(self, inventory_file) -> None:
        jump = InventoryRegistry(inventory_file).load().jump_host
        assert jump.key_path == "/keys/edge"
        assert jump.user == "master"
        assert jump.address == "198.51.100.5"
        assert jump.vpn_mode_script == DEFAULT_VPN_MODE_SCRIPT

    def test_cached_until_reload(self, inventory_file) -> None:
        registry = InventoryRegistry(inventory_file)
        first = registry.load()
        inventory_file.write_text("infrastructure:\n  enabled: false\n", encoding="utf-8")
        assert registry.load() is first
        reloaded = registry.reload()
        assert reloaded is not first
        assert not reloaded.is_configured
        # The previous object is untouched
        assert first.is_configured

    def test_missing_file(self, tmp_path) -> None:
        inv = InventoryRegistry(tmp_path / "missing.yaml").load()
        assert not inv.is_configured
        assert inv.servers() == []

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("infrastructure: [unclosed\n", encoding="utf-8")
        assert not InventoryRegistry(path).load().is_configured

    def test_default_prometheus_url(self, tmp_path) -> None:
        path = tmp_path / "infra.yaml"
        path.write_text("infrastructure:\n  clouds:\n    - name: A\n      servers:\n        - id: a\n", encoding="utf-8")
        inv = InventoryRegistry(path, default_prometheus_url="http://fallback:9090").load()
        assert inv.prometheus_url == "http://fallback:9090"
        # enabled defaults to true when clouds are declared
        assert inv.is_configured


class TestParseInventory:
    def test_malformed_server_skipped(self) -> None:
        inv = parse_inventory({
            "infrastructure": {
                "enabled": True,
                "clouds": [{"name": "A", "servers": [{"name": "no id"}, {"id": "ok"}]}],
            },
        })
        assert [s.id for s in inv.servers()] == ["ok"]

    def test_disabled(self) -> None:
        inv = parse_inventory({
            "infrastructure": {"enabled": False, "clouds": [{"name": "A", "servers": [{"id": "a"}]}]},
        })
        assert not inv.is_configured

    def test_empty(self) -> None:
        inv = parse_inventory({})
        assert not inv.is_configured
        assert inv.jump_host is None

    def test_to_dict(self) -> None:
        inv = parse_inventory({
            "infrastructure": {"clouds": [{"name": "A", "servers": [{"id": "a", "ip": "10.0.0.1"}]}]},
        })
        d = inventory_to_dict(inv)
        assert d["clouds"][0]["servers"][0] == {"id": "a", "name": "a", "icon": DEFAULT_SERVER_ICON, "ip": "10.0.0.1"}

    def test_non_mapping_upstream_skipped(self) -> None:
        inv = parse_inventory({
            "infrastructure": {"clouds": [{"name": "A", "servers": [{"id": "a"}]}]},
            "upstreams": {"bad": "not-a-mapping", "ok": {"ip": "1.2.3.4"}},
        })
        assert list(inv.upstreams) == ["ok"]
        assert inv.is_configured

    def test_non_mapping_cloud_and_server_skipped(self) -> None:
        inv = parse_inventory({
            "infrastructure": {
                "clouds": ["just a string", {"name": "A", "servers": ["web-1", 42, {"id": "a"}]}],
            },
        })
        assert [c.name for c in inv.clouds] == ["A"]
        assert [s.id for s in inv.servers()] == ["a"]

    def test_malformed_sections_ignored(self) -> None:
        inv = parse_inventory({"infrastructure": "yes", "upstreams": ["x"], "edge": "gw"})
        assert not inv.is_configured
        assert inv.upstreams == {}
        assert inv.jump_host is None


class TestRegistryRobustness:
    def test_malformed_entries_do_not_abort_load(self, tmp_path) -> None:
        path = tmp_path / "infra.yaml"
        path.write_text(
            "infrastructure:\n"
            "  clouds:\n"
            "    - name: A\n"
            "      servers:\n"
            "        - id: a\n"
            "upstreams:\n"
            "  bad: not-a-mapping\n",
            encoding="utf-8",
        )
        inv = InventoryRegistry(path).load()
        assert inv.is_configured
        assert inv.upstreams == {}

    def test_top_level_list(self, tmp_path) -> None:
        path = tmp_path / "infra.yaml"
        path.write_text("- one\n- two\n", encoding="utf-8")
        assert not InventoryRegistry(path).load().is_configured


# ── Environment expansion ────────────────────────────────────────────────────


class TestExpandEnv:
    def test_braced_and_bare(self, monkeypatch) -> None:
        monkeypatch.setenv("IW_HOST", "gw.example.com")
        assert expand_env("ssh ${IW_HOST} $IW_HOST") == "ssh gw.example.com gw.example.com"

    def test_undefined_becomes_empty(self, monkeypatch) -> None:
        monkeypatch.delenv("IW_UNDEFINED_VAR", raising=False)
        assert expand_env("key_path: ${IW_UNDEFINED_VAR}") == "key_path: "

    def test_undefined_in_inventory(self, tmp_path, monkeypatch) -> None:
        monkeypatch.delenv("IW_MISSING_KEY", raising=False)
        path = tmp_path / "infra.yaml"
        path.write_text("edge:\n  host: gw\n  key_path: ${IW_MISSING_KEY}\n", encoding="utf-8")
        assert InventoryRegistry(path).load().jump_host.key_path == ""
