"""CLI — Service command.

Runs the long-lived agent in the foreground: boot triggers once, then logon
detection, marker watching and preference reloading until SIGINT / SIGTERM.
"""

from __future__ import annotations

import asyncio

import typer

from startset.cli.state import console, load_settings
from startset.triggers.service import StartSetService


def service(
    ctx: typer.Context,
    no_boot: bool = typer.Option(False, "--no-boot", help="Skip the boot trigger."),
    no_logon: bool = typer.Option(False, "--no-logon", help="Disable logon detection."),
    no_markers: bool = typer.Option(False, "--no-markers", help="Disable marker file watching."),
) -> None:
    """Run the StartSet agent in the foreground."""
    settings = load_settings(ctx)
    console.print(
        f"[bold green]StartSet agent[/bold green] watching [cyan]{settings.paths.script_root}[/cyan]"
    )
    svc = StartSetService(
        settings,
        boot=not no_boot,
        logon=not no_logon,
        markers=not no_markers,
    )
    try:
        asyncio.run(svc.run())
    except KeyboardInterrupt:
        console.print("[dim]Interrupted.[/dim]")
