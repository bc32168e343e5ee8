"""CLI — Ignored user commands."""

from __future__ import annotations

import typer

from startset.cli.state import console, fail, load_settings
from startset.config import Settings
from startset.exceptions import StartSetError

app = typer.Typer(help="Manage users excluded from all script execution.")


@app.command("add")
def add(
    ctx: typer.Context,
    username: str = typer.Argument(..., help="User name to ignore."),
) -> None:
    """Exclude a user from script execution."""
    settings = load_settings(ctx)
    prefs = settings.preferences
    if prefs.is_ignored_user(username):
        console.print(f"[yellow]User already ignored: {username}[/yellow]")
        return
    prefs.ignored_users.append(username)
    _save(settings)
    console.print(f"Ignoring user: {username}")


@app.command("remove")
def remove(
    ctx: typer.Context,
    username: str = typer.Argument(..., help="User name to stop ignoring."),
) -> None:
    """Stop ignoring a user."""
    settings = load_settings(ctx)
    prefs = settings.preferences
    folded = username.casefold()
    remaining = [u for u in prefs.ignored_users if u.casefold() != folded]
    if len(remaining) == len(prefs.ignored_users):
        console.print(f"[yellow]User not in ignore list: {username}[/yellow]")
        return
    prefs.ignored_users = remaining
    _save(settings)
    console.print(f"No longer ignoring user: {username}")


@app.command("list")
def list_users(ctx: typer.Context) -> None:
    """List ignored users."""
    users = load_settings(ctx).preferences.ignored_users
    if not users:
        console.print("[dim]No ignored users.[/dim]")
        return
    for name in users:
        console.print(name)


def _save(settings: Settings) -> None:
    try:
        settings.save_preferences("ignored_users")
    except StartSetError as exc:
        raise fail(exc.message)
