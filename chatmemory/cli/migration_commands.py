"""Mount the migration command group on the main CLI.

The migration CLI module is imported inside `register_commands`, so importing
this module does not load the storage stack.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import typer
    from rich.console import Console


_MIGRATION_COMMAND_NAME: str = "migration"


def register_commands(app: "typer.Typer", console: "Console") -> None:
    """Register and mount the migration commands.

    Args:
        app: The main Typer application object to which commands are added.
        console: The Rich console instance, kept for a consistent registration
            interface; the migration group prints through its own console.
    """
    from chatmemory.services.migration import cli as migration_cli

    app.add_typer(migration_cli.app, name=_MIGRATION_COMMAND_NAME)
