"""CLI — shared state and rendering helpers.

The root callback stores the global flags in ``ctx.obj``; commands call
``load_settings(ctx)`` to get a configured Settings instance (logging set up,
singleton replaced) and ``build_engine(ctx)`` for an engine bound to it.
"""

from __future__ import annotations

import asyncio
import getpass
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import typer
from rich.console import Console
from rich.table import Table

from startset.config import Settings, override_settings
from startset.engine import ExecutionEngine, summarize
from startset.exceptions import StartSetError
from startset.logging import configure_logging
from startset.models import ExecutionOutcome, ExecutionStatus, PayloadClass

console = Console()
err_console = Console(stderr=True)

_STATUS_STYLE = {
    ExecutionStatus.SUCCESS: "green",
    ExecutionStatus.FAILED: "red",
    ExecutionStatus.TIMEOUT: "red",
    ExecutionStatus.UNSUPPORTED_TYPE: "yellow",
    ExecutionStatus.SKIPPED: "dim",
}


@dataclass
class CliOptions:
    config: Path | None = None
    verbose: bool = False
    debug: bool = False
    settings: Settings | None = None


def _options(ctx: typer.Context) -> CliOptions:
    root = ctx.find_root()
    if not isinstance(root.obj, CliOptions):
        root.obj = CliOptions()
    return root.obj


def fail(message: str) -> typer.Exit:
    err_console.print(f"[red]{message}[/red]")
    return typer.Exit(1)


def load_settings(ctx: typer.Context) -> Settings:
    opts = _options(ctx)
    if opts.settings is not None:
        return opts.settings
    try:
        settings = Settings.load(config_file=opts.config)
    except StartSetError as exc:
        raise fail(exc.message)
    except ValueError as exc:
        raise fail(f"Invalid configuration: {exc}")
    configure_logging(
        level=settings.effective_log_level(verbose=opts.verbose, debug=opts.debug),
        format=settings.logging.format,
        log_file=settings.log_file,
    )
    override_settings(settings)
    opts.settings = settings
    return settings


def build_engine(ctx: typer.Context) -> ExecutionEngine:
    return ExecutionEngine(load_settings(ctx))


def current_user() -> str:
    return getpass.getuser()


def parse_payload_class(value: str) -> PayloadClass:
    try:
        return PayloadClass.parse(value)
    except ValueError:
        valid = ", ".join(pc.value for pc in PayloadClass)
        raise fail(f"Unknown payload type: {value} (expected one of: {valid})")


def run_engine(
    engine: ExecutionEngine,
    payload_classes: Sequence[PayloadClass],
    username: str | None = None,
    wait_for_network: bool | None = None,
) -> list[ExecutionOutcome]:
    return asyncio.run(
        engine.run(payload_classes, username=username, wait_for_network=wait_for_network)
    )


def exit_code(outcomes: Sequence[ExecutionOutcome]) -> int:
    """1 when any outcome is neither success nor skipped."""
    ok = (ExecutionStatus.SUCCESS, ExecutionStatus.SKIPPED)
    return 1 if any(o.status not in ok for o in outcomes) else 0


def print_outcomes(outcomes: Sequence[ExecutionOutcome], title: str) -> None:
    if not outcomes:
        console.print(f"[dim]{title}: no scripts to run.[/dim]")
        return

    table = Table(title=title)
    table.add_column("Script", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Exit", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Detail")
    for o in outcomes:
        style = _STATUS_STYLE.get(o.status, "")
        duration = f"{o.duration.total_seconds():.1f}s" if o.duration else "-"
        table.add_row(
            o.candidate.filename,
            o.candidate.payload_class.value,
            f"[{style}]{o.status.value}[/{style}]" if style else o.status.value,
            "-" if o.exit_code is None else str(o.exit_code),
            duration,
            o.error or "",
        )
    console.print(table)

    counts = summarize(outcomes)
    console.print(
        f"{len(outcomes)} scripts: "
        f"[green]{counts['success']} succeeded[/green], "
        f"[red]{counts['failed'] + counts['timeout']} failed[/red], "
        f"{counts['skipped']} skipped, "
        f"[yellow]{counts['unsupported-type']} unsupported[/yellow]"
    )


def finish(outcomes: Sequence[ExecutionOutcome], title: str) -> None:
    print_outcomes(outcomes, title)
    code = exit_code(outcomes)
    if code:
        raise typer.Exit(code)
