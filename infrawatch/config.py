from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Inventory (clouds, servers, upstreams, jump host)
    inventory_path: str = "infrastructure.yaml"

    # Metrics backend (used when the inventory does not set prometheus_url)
    prometheus_url: str = "http://localhost:9090"
    metrics_timeout: float = 10.0

    # Health checker
    health_cache_ttl: float = 60.0  # seconds, fleet-wide
    health_max_workers: int = 4  # concurrent per-server checks during a refresh
    probe_timeout: float = 10.0

    # SSH tunnel to remote agents
    ssh_key_path: str = ""  # empty = rely on ssh-agent (SSH_AUTH_SOCK)
    ssh_connect_timeout: int = 10
    ssh_command_timeout: float = 30.0
    ssh_bulk_timeout: float = 60.0  # node metrics scrape

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Webhook receiver
    webhook_secret: str = ""

    # Notifications (optional)
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    # Logging
    log_level: str = "INFO"


settings = Settings()
