"""CLI — Network status command."""

from __future__ import annotations

import typer
from rich.table import Table

from startset.cli.state import console
from startset.network.monitor import ConnectivityMonitor


def network() -> None:
    """Show network connectivity as seen by the boot gate."""
    status = ConnectivityMonitor().status()

    table = Table(title="Network interfaces")
    table.add_column("Interface", style="cyan")
    table.add_column("Up")
    table.add_column("Gateway")
    table.add_column("Addresses")
    for iface in status.interfaces:
        table.add_row(
            iface.name,
            "yes" if iface.is_up else "no",
            "yes" if iface.has_gateway else "no",
            ", ".join(iface.addresses) or "-",
        )
    console.print(table)

    if status.probe_address:
        console.print(f"Route probe source address: {status.probe_address}")
    if status.connected:
        console.print("[green]Network available[/green]")
    else:
        console.print("[red]Network unavailable[/red]")
        raise typer.Exit(1)
