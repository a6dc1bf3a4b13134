"""mydevices CLI.

Commands:
- bulk import: Import locations and devices from a CSV file
- bulk deactivate: Unpair devices listed in a file
"""

from __future__ import annotations

import typer
from rich.console import Console

from mydevices import __version__
from mydevices.bulk.cli import bulk_cli
from mydevices.core.logging import configure_logging

app = typer.Typer(
    name="mydevices",
    help="CLI tool for managing the myDevices IoT platform",
    no_args_is_help=True,
)
app.add_typer(bulk_cli, name="bulk")

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"mydevices {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None, "--log-level", help="Logging verbosity (default: LOG_LEVEL or WARNING)"
    ),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """myDevices platform command-line client."""
    configure_logging(level=log_level)


if __name__ == "__main__":
    app()
