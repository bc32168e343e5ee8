"""CLI — Run-once tracking commands."""

from __future__ import annotations

import typer
from rich.table import Table

from startset.cli.state import build_engine, console, current_user, fail
from startset.tracking.runonce import RunOnceTracker, tracker_for

app = typer.Typer(help="Inspect and reset run-once tracking.")


def _tracker(ctx: typer.Context, user: str | None, system: bool) -> RunOnceTracker:
    layout = build_engine(ctx).layout
    if system:
        return tracker_for(layout)
    return tracker_for(layout, user or current_user())


@app.command("list")
def list_entries(
    ctx: typer.Context,
    user: str | None = typer.Option(None, "--user", "-u", help="User ledger (default: current user)."),
    system: bool = typer.Option(False, "--system", "-s", help="Show the system ledger instead."),
) -> None:
    """List recorded run-once executions."""
    tracker = _tracker(ctx, user, system)
    entries = tracker.entries()
    if not entries:
        console.print(f"[dim]No executions recorded in {tracker.ledger_path}[/dim]")
        return

    table = Table(title=str(tracker.ledger_path))
    table.add_column("Script", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Executed")
    table.add_column("Exit", justify="right")
    table.add_column("Success")
    table.add_column("Checksum")
    for key, entry in sorted(entries.items()):
        table.add_row(
            key,
            entry.payload_type,
            entry.executed_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(entry.exit_code),
            "[green]yes[/green]" if entry.success else "[red]no[/red]",
            entry.checksum[:12],
        )
    console.print(table)


@app.command("clear")
def clear(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="Script file name to clear."),
    all_: bool = typer.Option(False, "--all", "-a", help="Clear every entry in the ledger."),
    user: str | None = typer.Option(None, "--user", "-u", help="User ledger (default: current user)."),
    system: bool = typer.Option(False, "--system", "-s", help="Clear the system ledger instead."),
) -> None:
    """Clear run-once tracking so scripts run again."""
    if not name and not all_:
        raise fail("Specify a script name or --all.")
    tracker = _tracker(ctx, user, system)
    if all_:
        count = tracker.clear_all()
        console.print(f"Cleared {count} run-once entr{'y' if count == 1 else 'ies'}.")
        return
    if tracker.clear_execution(name):
        console.print(f"Cleared run-once tracking for: {name}")
    else:
        console.print(f"[yellow]No run-once entry for: {name}[/yellow]")
