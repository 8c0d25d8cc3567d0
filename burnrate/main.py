"""Entry point for the BurnRate usage monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from burnrate.config import settings
from burnrate.monitor.refresher import ProfileMonitor
from burnrate.monitor.scheduler import MonitorScheduler, create_scheduler

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_STATUS_STYLE = {"ok": "green", "warn": "yellow", "critical": "red", "unknown": "dim"}


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting BurnRate API Server", style="bold green"))
    uvicorn.run(
        "burnrate.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def _usage_table(scheduler: MonitorScheduler) -> Table:
    table = Table(title="Claude usage")
    table.add_column("Profile", style="bold")
    table.add_column("Plan")
    table.add_column("Weekly", justify="right")
    table.add_column("Session", justify="right")
    table.add_column("Tokens (7d)", justify="right")
    table.add_column("Today", justify="right")
    table.add_column("Resets in")
    table.add_column("Source")

    for monitor in scheduler.monitors.values():
        view = monitor.view
        summary = monitor.summary
        style = _STATUS_STYLE.get(view.status, "")
        table.add_row(
            monitor.name,
            view.plan_name,
            f"[{style}]{view.percent_text}[/{style}]" if style else view.percent_text,
            view.session_percent_text,
            f"{view.weekly_tokens_text} / {view.weekly_limit_text}",
            f"{summary.today_messages} msgs, {view.today_tokens_text}",
            view.weekly_resets_in or "-",
            "live" if summary.is_live else "est.",
        )
    return table


def run_show() -> None:
    """Run one refresh cycle per profile and print the results."""
    scheduler = create_scheduler(settings)
    if not scheduler.monitors:
        console.print("[yellow]No Claude profiles found.[/yellow]")
        sys.exit(1)

    with console.status("[bold green]Reading usage..."):
        asyncio.run(scheduler.refresh_all())

    console.print(_usage_table(scheduler))
    for monitor in scheduler.monitors.values():
        if monitor.last_error:
            console.print(f"[red]{monitor.name}: {monitor.last_error}[/red]")


def _print_change(monitor: ProfileMonitor, changed: list[str]) -> None:
    console.print(Panel(monitor.view.tooltip, title=f"{monitor.name} (v{monitor.version})"))
    console.print(f"[dim]Changed: {', '.join(changed)}[/dim]")


async def _watch(scheduler: MonitorScheduler) -> None:
    for monitor in scheduler.monitors.values():
        monitor.subscribe(_print_change)
    await scheduler.start()
    try:
        while scheduler.running:
            await asyncio.sleep(1.0)
    finally:
        await scheduler.stop()


def run_watch() -> None:
    """Refresh on the configured interval and print each change."""
    scheduler = create_scheduler(settings)
    if not scheduler.monitors:
        console.print("[yellow]No Claude profiles found.[/yellow]")
        sys.exit(1)

    console.print(Panel(
        f"Watching {len(scheduler.monitors)} profile(s) every {scheduler.interval:.0f}s",
        title="BurnRate", style="bold blue",
    ))
    try:
        asyncio.run(_watch(scheduler))
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")


def main() -> None:
    parser = argparse.ArgumentParser(description="BurnRate Claude usage monitor")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("show", help="Print current usage for every profile")
    sub.add_parser("watch", help="Refresh periodically and print changes")
    sub.add_parser("serve", help="Start the API server")

    args = parser.parse_args()

    if args.command == "show":
        run_show()
    elif args.command == "watch":
        run_watch()
    elif args.command == "serve":
        run_server()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
