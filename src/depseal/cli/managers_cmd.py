"""depseal managers - list supported package managers and backends."""
from __future__ import annotations

import json

import click
from rich.box import ROUNDED
from rich.console import Console
from rich.table import Table

from depseal.harness.backends import available_backends
from depseal.resolvers import available_managers, get_resolver


@click.command("managers")
@click.option("--json", "output_json", is_flag=True, help="Output result as JSON")
def managers_command(output_json: bool) -> None:
    """List package managers with their lockfiles and minimum versions."""
    rows = [get_resolver(name).descriptor() for name in available_managers()]
    if output_json:
        click.echo(json.dumps({"managers": rows, "backends": available_backends()}, indent=2))
        return

    table = Table(title="Package managers", box=ROUNDED, border_style="cyan", header_style="bold")
    table.add_column("Manager")
    table.add_column("Lockfiles")
    table.add_column("Minimum version", justify="right")
    for row in rows:
        table.add_row(str(row["name"]), ", ".join(row["lockfiles"]), str(row["min_manager_version"]))
    console = Console()
    console.print(table)
    console.print(f"Execution backends: {', '.join(available_backends())}")


__all__ = ["managers_command"]
