"""Entry point for infrawatch: API server and one-shot health views."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from infrawatch.config import settings
from infrawatch.health.checker import HealthChecker, ServerNotFoundError
from infrawatch.health.formatting import (
    external_icon,
    format_progress_bar,
    format_uptime,
    status_icon,
)
from infrawatch.health.models import ServerStatus
from infrawatch.inventory.registry import InventoryRegistry
from infrawatch.metrics.client import MetricsError

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting infrawatch API Server", style="bold green"))
    uvicorn.run(
        "infrawatch.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def _build_checker() -> HealthChecker | None:
    inventory = InventoryRegistry(settings.inventory_path, settings.prometheus_url).load()
    if not inventory.is_configured:
        console.print(f"[yellow]Infrastructure monitoring is not configured ({settings.inventory_path}).[/yellow]")
        return None
    return HealthChecker.from_settings(inventory, settings)


def render_fleet(checker: HealthChecker, statuses: list[ServerStatus]) -> None:
    by_cloud: dict[str, list[ServerStatus]] = {}
    for s in statuses:
        by_cloud.setdefault(s.cloud_name, []).append(s)

    for cloud in checker.inventory.clouds:
        servers = by_cloud.get(cloud.name)
        if not servers:
            continue
        table = Table(title=f"{cloud.icon} {cloud.name}", title_justify="left")
        table.add_column("")
        table.add_column("Server")
        table.add_column("CPU", justify="right")
        table.add_column("RAM", justify="right")
        table.add_column("Disk", justify="right")
        table.add_column("Uptime")
        table.add_column("Ext")
        for s in servers:
            table.add_row(
                status_icon(s),
                s.name,
                f"{s.cpu:.0f}%",
                f"{s.memory:.0f}%",
                f"{s.disk:.0f}%",
                format_uptime(s.uptime),
                external_icon(s),
            )
        console.print(table)


def render_server(status: ServerStatus) -> None:
    d = status.descriptor
    lines = [f"Status: {status_icon(status)} {status.level.value}"]

    if status.external_access:
        line = f"External: {external_icon(status)} accessible"
        if status.external_latency_ms > 0:
            line += f" ({status.external_latency_ms:.0f}ms)"
    else:
        line = f"External: {external_icon(status)} not accessible"
        if status.external_error:
            line += f" ({status.external_error})"
    lines.append(line)

    if status.services:
        lines.append("\n[bold]Services:[/bold]")
        for svc in status.services:
            entry = f"  • {svc.name} {'✅' if svc.is_up else '❌'}"
            if svc.port:
                entry += f" (:{svc.port})"
            if svc.error:
                entry += f" [dim]{svc.error}[/dim]"
            lines.append(entry)

    if status.is_up:
        lines.append("\n[bold]Resources:[/bold]")
        lines.append(f"• CPU: {status.cpu:.0f}% {format_progress_bar(status.cpu)}")
        lines.append(
            f"• RAM: {status.memory:.0f}% {format_progress_bar(status.memory)} "
            f"({status.memory_used_gb:.1f}/{status.memory_total_gb:.1f} GB)"
        )
        lines.append(
            f"• Disk: {status.disk:.0f}% {format_progress_bar(status.disk)} "
            f"({status.disk_used_gb:.1f}/{status.disk_total_gb:.1f} GB)"
        )
        lines.append(f"\nUptime: {format_uptime(status.uptime)}")

    console.print(Panel("\n".join(lines), title=f"{d.icon} {d.name} ({d.ip})"))


def run_health(force: bool) -> int:
    checker = _build_checker()
    if checker is None:
        return 0
    try:
        checker.ping()
    except MetricsError as e:
        console.print(f"[yellow]Metrics backend: {e}[/yellow]")
    with console.status("[bold green]Checking servers..."):
        statuses = checker.check_all_force() if force else checker.check_all()
    render_fleet(checker, statuses)
    return 0


def run_server_detail(server_id: str, force: bool) -> int:
    checker = _build_checker()
    if checker is None:
        return 0
    try:
        with console.status(f"[bold green]Checking {server_id}..."):
            status = checker.check_server_force(server_id) if force else checker.check_server(server_id)
    except ServerNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    render_server(status)
    return 0


def run_ssh_stats() -> int:
    checker = _build_checker()
    if checker is None:
        return 0
    stats = checker.ssh_stats()
    if not stats:
        console.print("No SSH endpoints configured.")
        return 0
    table = Table(title="SSH calls")
    for col in ("Endpoint", "OK", "Errors", "Last latency", "Last error"):
        table.add_column(col)
    for name, snap in stats.items():
        table.add_row(
            name,
            str(snap.success_count),
            str(snap.error_count),
            f"{snap.last_latency_ms:.0f}ms",
            snap.last_error or "-",
        )
    console.print(table)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="infrawatch — infrastructure health")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server")

    health_parser = sub.add_parser("health", help="Show fleet health")
    health_parser.add_argument("--force", action="store_true", help="Bypass the cache")

    server_parser = sub.add_parser("server", help="Show one server in detail")
    server_parser.add_argument("server_id")
    server_parser.add_argument("--force", action="store_true", help="Bypass the cache")

    sub.add_parser("ssh-stats", help="Show SSH call statistics")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "health":
        sys.exit(run_health(args.force))
    elif args.command == "server":
        sys.exit(run_server_detail(args.server_id, args.force))
    elif args.command == "ssh-stats":
        sys.exit(run_ssh_stats())
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
