"""CLI — Checksum command."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import typer

from startset.cli.state import build_engine, console, fail
from startset.integrity.checksum import IntegrityService
from startset.models import PayloadClass


def checksum(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="File to hash, or 'all' for every managed script."),
    record: bool = typer.Option(False, "--record", "-r", help="Store the hash as the baseline."),
    comment: str | None = typer.Option(None, "--comment", "-c", help="Comment for recorded entries."),
) -> None:
    """Print SHA-256 checksums and optionally record them as baselines."""
    engine = build_engine(ctx)
    integrity = engine.integrity

    if target.lower() != "all":
        path = Path(target)
        if not path.is_file():
            raise fail(f"File not found: {path}")
        console.print(f"{IntegrityService.hash_file(path)}  {path.name}")
        if record:
            _record(integrity, path, comment or "Recorded via CLI")
            console.print(f"Checksum recorded to {integrity.ledger_path}")
        return

    console.print("# StartSet SHA256 checksums")
    console.print(f"# Generated: {datetime.now():%Y-%m-%d %H:%M:%S}")
    count = failures = 0
    for payload_class in PayloadClass:
        for candidate in engine.discover(payload_class):
            try:
                digest = IntegrityService.hash_file(candidate.path)
            except OSError as exc:
                console.print(f"[red]# error: {candidate.path}: {exc}[/red]")
                failures += 1
                continue
            console.print(f"{digest}  {candidate.path}")
            count += 1
            if record:
                _record(integrity, candidate.path, comment or "Recorded via 'checksum all'")

    console.print(f"# {count} file(s)")
    if record:
        console.print(f"# Recorded to {integrity.ledger_path}")
    if failures:
        raise typer.Exit(1)


def _record(integrity: IntegrityService, path: Path, comment: str) -> None:
    try:
        integrity.record(path, comment=comment)
    except OSError as exc:
        raise fail(f"Error recording checksum for {path}: {exc}")
