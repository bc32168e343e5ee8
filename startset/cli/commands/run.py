"""CLI — Trigger commands that run payload classes immediately."""

from __future__ import annotations

import typer

from startset.cli.state import (
    build_engine,
    console,
    current_user,
    finish,
    parse_payload_class,
    run_engine,
)
from startset.models import PayloadClass, TriggerKind


def boot(
    ctx: typer.Context,
    skip_network: bool = typer.Option(
        False, "--skip-network", help="Do not wait for network connectivity."
    ),
) -> None:
    """Run boot scripts (boot-once and boot-every)."""
    engine = build_engine(ctx)
    outcomes = run_engine(
        engine,
        TriggerKind.BOOT.payload_classes,
        wait_for_network=False if skip_network else None,
    )
    finish(outcomes, "Boot scripts")


def login(
    ctx: typer.Context,
    user: str | None = typer.Option(None, "--user", "-u", help="Run for this user (default: current user)."),
) -> None:
    """Run login scripts (login-once and login-every) for a user."""
    engine = build_engine(ctx)
    outcomes = run_engine(
        engine,
        TriggerKind.LOGIN.payload_classes,
        username=user or current_user(),
        wait_for_network=False,
    )
    finish(outcomes, "Login scripts")


def login_window(ctx: typer.Context) -> None:
    """Run login-window scripts."""
    engine = build_engine(ctx)
    outcomes = run_engine(engine, TriggerKind.LOGIN_WINDOW.payload_classes, wait_for_network=False)
    finish(outcomes, "Login-window scripts")


def login_privileged(
    ctx: typer.Context,
    user: str | None = typer.Option(None, "--user", "-u", help="Run for this user (default: current user)."),
) -> None:
    """Run privileged login scripts for a user."""
    engine = build_engine(ctx)
    outcomes = run_engine(
        engine,
        TriggerKind.LOGIN_PRIVILEGED.payload_classes,
        username=user or current_user(),
        wait_for_network=False,
    )
    finish(outcomes, "Privileged login scripts")


def on_demand(
    ctx: typer.Context,
    privileged: bool = typer.Option(
        False, "--privileged", "-p", help="Run on-demand-privileged scripts instead."
    ),
    user: str | None = typer.Option(None, "--user", "-u", help="Run for this user (default: current user)."),
) -> None:
    """Run on-demand scripts."""
    kind = TriggerKind.ON_DEMAND_PRIVILEGED if privileged else TriggerKind.ON_DEMAND
    engine = build_engine(ctx)
    outcomes = run_engine(
        engine,
        kind.payload_classes,
        username=user or current_user(),
        wait_for_network=False,
    )
    finish(outcomes, "On-demand scripts")


def run_type(
    ctx: typer.Context,
    type_: str = typer.Option(..., "--type", "-t", help="Payload type to run."),
    user: str | None = typer.Option(None, "--user", "-u", help="Scope username for user-context types."),
    skip_network: bool = typer.Option(False, "--skip-network", help="Do not wait for network connectivity."),
) -> None:
    """Run the scripts of a single payload type."""
    payload_class = parse_payload_class(type_)
    username = user or (current_user() if payload_class.is_user_context else None)
    wait = payload_class is PayloadClass.BOOT_ONCE and not skip_network
    engine = build_engine(ctx)
    outcomes = run_engine(engine, [payload_class], username=username, wait_for_network=wait)
    finish(outcomes, f"{payload_class.value} scripts")


def cleanup(
    ctx: typer.Context,
    all_: bool = typer.Option(
        False, "--all", "-a", help="Also empty the on-demand directories."
    ),
) -> None:
    """Delete trigger marker files (and on-demand scripts with --all)."""
    engine = build_engine(ctx)
    markers = engine.cleanup_markers()
    console.print(f"Removed {markers} trigger file(s).")
    if all_:
        scripts = engine.cleanup_on_demand()
        console.print(f"Removed {scripts} on-demand script(s).")
