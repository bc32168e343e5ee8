"""StartSet CLI — Entry point.

Usage:
    startset boot [--skip-network]
    startset login [--user NAME]
    startset login-window
    startset login-privileged [--user NAME]
    startset on-demand [--privileged]
    startset run --type <payload-type>
    startset cleanup [--all]
    startset list [--type T] [--show-executed] [--json]
    startset add <file> --type T [--checksum]
    startset remove <name> --type T [--clear-runonce]
    startset checksum <file|all> [--record]
    startset override add|remove|list
    startset ignored-user add|remove|list
    startset runonce list|clear
    startset network
    startset service
"""

from __future__ import annotations

from pathlib import Path

import typer

from startset import __version__
from startset.cli.commands import (
    checksum,
    ignored_users,
    network,
    overrides,
    run,
    runonce,
    scripts,
    service,
)
from startset.cli.state import CliOptions, console

app = typer.Typer(
    name="startset",
    help="StartSet — Run managed scripts at boot, login and on demand.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

app.command("boot")(run.boot)
app.command("login")(run.login)
app.command("login-window")(run.login_window)
app.command("login-privileged")(run.login_privileged)
app.command("on-demand")(run.on_demand)
app.command("run")(run.run_type)
app.command("cleanup")(run.cleanup)

app.command("list")(scripts.list_scripts)
app.command("add")(scripts.add)
app.command("remove")(scripts.remove)
app.command("checksum")(checksum.checksum)
app.command("network")(network.network)
app.command("service")(service.service)

app.add_typer(overrides.app, name="override")
app.add_typer(ignored_users.app, name="ignored-user")
app.add_typer(runonce.app, name="runonce")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"startset {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Preferences file (default: <script_root>/config.yaml)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging."),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    ctx.obj = CliOptions(config=config, verbose=verbose, debug=debug)


if __name__ == "__main__":
    app()
