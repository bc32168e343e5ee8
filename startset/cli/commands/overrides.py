"""CLI — Run-once override commands.

An override makes a run-once script run again on every trigger.  Overrides
are stored in the ``preferences.overrides`` list of the preferences file.
"""

from __future__ import annotations

import typer

from startset.cli.state import build_engine, console, current_user, fail, load_settings
from startset.config import Settings
from startset.exceptions import StartSetError
from startset.models import normalize_key
from startset.tracking.runonce import tracker_for

app = typer.Typer(help="Manage run-once overrides.")


@app.command("add")
def add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Script file name to override."),
) -> None:
    """Add a run-once override for a script."""
    settings = load_settings(ctx)
    key = normalize_key(name)
    prefs = settings.preferences
    if prefs.is_overridden(key):
        console.print(f"[yellow]Override already exists: {key}[/yellow]")
        return
    prefs.overrides.append(key)
    _save(settings)
    console.print(f"Added override: {key}")


@app.command("remove")
def remove(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Script file name to remove the override for."),
    clear_runonce: bool = typer.Option(
        False, "--clear-runonce", help="Also clear run-once tracking for the script."
    ),
    user: str | None = typer.Option(None, "--user", "-u", help="User ledger to clear (default: current user)."),
) -> None:
    """Remove a run-once override."""
    settings = load_settings(ctx)
    key = normalize_key(name)
    prefs = settings.preferences
    remaining = [o for o in prefs.overrides if normalize_key(o) != key]
    if len(remaining) == len(prefs.overrides):
        console.print(f"[yellow]Override not found: {key}[/yellow]")
    else:
        prefs.overrides = remaining
        _save(settings)
        console.print(f"Removed override: {key}")

    if clear_runonce:
        layout = build_engine(ctx).layout
        username = user or current_user()
        cleared = tracker_for(layout).clear_execution(key)
        cleared = tracker_for(layout, username).clear_execution(key) or cleared
        if cleared:
            console.print(f"Cleared run-once tracking for: {key}")


@app.command("list")
def list_overrides(ctx: typer.Context) -> None:
    """List run-once overrides."""
    overrides = load_settings(ctx).preferences.overrides
    if not overrides:
        console.print("[dim]No overrides configured.[/dim]")
        return
    for name in overrides:
        console.print(name)


def _save(settings: Settings) -> None:
    try:
        path = settings.save_preferences("overrides")
    except StartSetError as exc:
        raise fail(exc.message)
    console.print(f"[dim]Saved {path}[/dim]")
