"""CLI — Script management commands (list, add, remove)."""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import typer
from rich.syntax import Syntax
from rich.table import Table

from startset.cli.state import (
    build_engine,
    console,
    current_user,
    fail,
    parse_payload_class,
)
from startset.integrity.checksum import IntegrityService
from startset.logging import get_logger
from startset.models import PayloadClass
from startset.tracking.runonce import tracker_for

log = get_logger(__name__)


def list_scripts(
    ctx: typer.Context,
    type_: str | None = typer.Option(None, "--type", "-t", help="Only this payload type."),
    show_executed: bool = typer.Option(
        False, "--show-executed", "-e", help="Show run-once execution status."
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON."),
    user: str | None = typer.Option(None, "--user", "-u", help="User ledger for user-context types."),
) -> None:
    """List scripts in the payload directories."""
    classes = [parse_payload_class(type_)] if type_ else list(PayloadClass)
    engine = build_engine(ctx)
    username = user or current_user()

    rows: list[dict[str, object]] = []
    for payload_class in classes:
        tracker = None
        if show_executed and payload_class.is_run_once:
            tracker = tracker_for(
                engine.layout, username if payload_class.is_user_context else None
            )
        for candidate in engine.discover(payload_class):
            row: dict[str, object] = {
                "payload_type": payload_class.value,
                "name": candidate.filename,
                "path": str(candidate.path),
                "size": candidate.size,
            }
            if show_executed:
                executed = None
                if tracker is not None:
                    try:
                        digest = IntegrityService.hash_file(candidate.path)
                    except OSError as exc:
                        log.warning("script_unreadable", script=str(candidate.path), error=str(exc))
                    else:
                        executed = tracker.has_executed(candidate.filename, digest)
                row["executed"] = executed
            rows.append(row)

    if json_output:
        console.print(Syntax(json.dumps(rows, indent=2), "json"))
        return
    if not rows:
        console.print("[dim]No scripts found.[/dim]")
        return

    table = Table(title=f"Scripts in {engine.layout.root}")
    table.add_column("Type", style="cyan")
    table.add_column("Name", no_wrap=True)
    table.add_column("Size", justify="right")
    if show_executed:
        table.add_column("Executed")
    for row in rows:
        cells = [str(row["payload_type"]), str(row["name"]), str(row["size"])]
        if show_executed:
            executed = row["executed"]
            cells.append("-" if executed is None else ("[green]yes[/green]" if executed else "no"))
        table.add_row(*cells)
    console.print(table)


def add(
    ctx: typer.Context,
    script: Path = typer.Argument(..., help="Script file to copy into the payload directory."),
    type_: str = typer.Option(..., "--type", "-t", help="Payload type to add the script to."),
    checksum: bool = typer.Option(False, "--checksum", "-c", help="Record a checksum baseline."),
) -> None:
    """Copy a script into a payload directory."""
    payload_class = parse_payload_class(type_)
    if not script.is_file():
        raise fail(f"Script file not found: {script}")

    engine = build_engine(ctx)
    target_dir = engine.layout.payload_dir(payload_class)
    target = target_dir / script.name
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(script, target)
    except OSError as exc:
        raise fail(f"Error adding script: {exc}")
    log.info("script_added", script=script.name, payload_class=payload_class.value)
    console.print(f"Added: {target}")

    if checksum:
        try:
            entry = engine.integrity.record(target, comment="Added via CLI")
        except OSError as exc:
            raise fail(f"Error recording checksum: {exc}")
        console.print(f"Checksum recorded: {entry.sha256}")


def remove(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="File name of the script to remove."),
    type_: str = typer.Option(..., "--type", "-t", help="Payload type to remove the script from."),
    clear_runonce: bool = typer.Option(
        False, "--clear-runonce", help="Also clear run-once tracking for the script."
    ),
    user: str | None = typer.Option(None, "--user", "-u", help="User ledger to clear (default: current user)."),
) -> None:
    """Remove a script from a payload directory."""
    payload_class = parse_payload_class(type_)
    engine = build_engine(ctx)
    target = engine.layout.payload_dir(payload_class) / Path(name).name

    if target.is_file():
        try:
            target.unlink()
        except OSError as exc:
            raise fail(f"Error removing script: {exc}")
        engine.integrity.remove(target)
        log.info("script_removed", script=target.name, payload_class=payload_class.value)
        console.print(f"Removed: {target}")
    else:
        console.print(f"[yellow]Script not found: {target}[/yellow]")

    if clear_runonce and payload_class.is_run_once:
        if tracker_for(engine.layout).clear_execution(target.name):
            console.print("Cleared system run-once tracking")
        username = user or current_user()
        if tracker_for(engine.layout, username).clear_execution(target.name):
            console.print(f"Cleared run-once tracking for user: {username}")
