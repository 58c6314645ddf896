"""Entry point of the `chatmemory` command-line tool."""

from __future__ import annotations

import typer
from rich.console import Console

from chatmemory import __version__
from chatmemory.cli.migration_commands import register_commands as register_migration

app = typer.Typer(
    name="chatmemory",
    help="Chat memory storage maintenance tools.",
    no_args_is_help=True,
)
console = Console()


@app.command(name="version")
def version() -> None:
    """Print the installed version."""
    console.print(__version__)


register_migration(app, console)
