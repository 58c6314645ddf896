"""CLI for the consolidated chat memory migration.

Operators use it to inspect the migration sentinel (`status`) and to run the
migration outside the hosting service (`run`). `run --force` is the recovery
path after a claimant crashed mid-copy: the sentinel then holds a stale claim
token that makes every other instance back off.

Settings come from `ChatMemorySettings` (`CHATMEMORY_*` variables and `.env`);
the flags only override the migration knobs. `build_migration_runtime` is
re-exported here as the seam tests patch.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from chatmemory.common.enums import ChatMigrationStatus, MigrationOutcome
from chatmemory.config.settings import ChatMemorySettings, ConfigError, MigrationOptions
from chatmemory.core.structured_logging import configure_logging
from chatmemory.services.memory.errors import MemoryStoreError
from chatmemory.services.migration.factory import MigrationRuntime
from chatmemory.services.migration.factory import (
    build_migration_runtime as _build_migration_runtime,
)
from chatmemory.services.migration.service import MigrationResult, run_migration

APP_NAME = "migration"
APP_HELP = "Inspect and run the consolidated chat memory migration."
STATUS_SPINNER_NAME = "dots"

_OUTCOME_STYLES: dict[MigrationOutcome, str] = {
    MigrationOutcome.COMPLETED: "green",
    MigrationOutcome.ALREADY_MIGRATED: "green",
    MigrationOutcome.CLAIMED_ELSEWHERE: "yellow",
    MigrationOutcome.LOST_RACE: "yellow",
    MigrationOutcome.CANCELLED: "yellow",
    MigrationOutcome.FAILED: "red",
}
_STATUS_STYLES: dict[ChatMigrationStatus, str] = {
    ChatMigrationStatus.NONE: "green",
    ChatMigrationStatus.UPGRADING: "yellow",
    ChatMigrationStatus.REQUIRES_UPGRADE: "red",
}

app = typer.Typer(name=APP_NAME, help=APP_HELP, no_args_is_help=True)
console = Console()


def build_migration_runtime(*args: Any, **kwargs: Any) -> MigrationRuntime:
    """Shim around the runtime factory for test patching."""
    return _build_migration_runtime(*args, **kwargs)


def setup_logging(settings: ChatMemorySettings, verbose: bool) -> None:
    """Configure logging from settings; `--verbose` forces DEBUG."""
    level = "DEBUG" if verbose else settings.logging.level
    configure_logging(level=level, json_logs=settings.logging.json_logs)


def _error_panel(message: str) -> Panel:
    return Panel(message, title="[bold red]Error[/bold red]", border_style="red")


def _load_settings() -> ChatMemorySettings:
    try:
        return ChatMemorySettings()
    except ValidationError as e:
        console.print(f"[bold red]Configuration Validation Error:[/bold red]\n{escape(str(e))}")
        raise typer.Exit(code=1)


def _build_runtime(
    settings: ChatMemorySettings, options: Optional[MigrationOptions] = None
) -> MigrationRuntime:
    try:
        return build_migration_runtime(settings, migration_options=options)
    except ConfigError as ce:
        console.print(_error_panel(f"Configuration failed: {escape(str(ce))}"))
        raise typer.Exit(code=1)


def _render_result(result: MigrationResult) -> None:
    style = _OUTCOME_STYLES[result.outcome]
    table = Table.grid(padding=(0, 2))
    table.add_row("Outcome", f"[bold {style}]{result.outcome.value}[/bold {style}]")
    table.add_row("Memories copied", str(result.copied))
    table.add_row("Memory sources removed", str(result.removed_sources))
    if result.token:
        table.add_row("Claim token", result.token)
    if result.error:
        table.add_row("Error", escape(result.error))
    console.print(
        Panel(table, title="[bold]Chat memory migration[/bold]", border_style=style)
    )


@app.command(name="run")
def run_command(
    force: bool = typer.Option(
        False,
        "--force",
        help="Skip the claim and migrate even if another instance's token is present.",
    ),
    claim_window: Optional[float] = typer.Option(
        None,
        "--claim-window",
        min=0.0,
        help="Seconds to wait between writing the claim token and re-reading it.",
    ),
    copy_attempts: Optional[int] = typer.Option(
        None,
        "--copy-attempts",
        min=1,
        help="How many times to run the copy before giving up.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging.",
    ),
) -> None:
    """Run the migration once in this process.

    Raises:
        typer.Exit: On configuration errors or a failed migration (exit code 1).
    """
    settings = _load_settings()
    setup_logging(settings, verbose)

    overrides: dict[str, Any] = {}
    if claim_window is not None:
        overrides["claim_window_seconds"] = claim_window
    if copy_attempts is not None:
        overrides["copy_attempts"] = copy_attempts
    options = settings.migration.model_copy(update=overrides)

    runtime = _build_runtime(settings, options)

    async def _async_run() -> MigrationResult:
        async with runtime:
            with console.status(
                "[bold green]Migrating chat memories...", spinner=STATUS_SPINNER_NAME
            ):
                return await run_migration(runtime.service, force=force)

    result = asyncio.run(_async_run())
    _render_result(result)
    if result.outcome in (MigrationOutcome.FAILED, MigrationOutcome.CANCELLED):
        if not verbose:
            console.print("[dim]Run with --verbose for details.[/dim]")
        raise typer.Exit(code=1)


@app.command(name="status")
def status_command(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging."),
) -> None:
    """Show whether the migration is pending, in progress, or done."""
    settings = _load_settings()
    setup_logging(settings, verbose)
    runtime = _build_runtime(settings)

    async def _async_status() -> ChatMigrationStatus:
        async with runtime:
            return await runtime.monitor.get_current_status()

    try:
        status = asyncio.run(_async_status())
    except MemoryStoreError as e:
        if verbose:
            console.print_exception(show_locals=False)
        console.print(_error_panel(f"Could not read the migration sentinel: {escape(str(e))}"))
        raise typer.Exit(code=1)

    style = _STATUS_STYLES[status]
    console.print(
        Panel(
            f"[bold {style}]{status.value}[/bold {style}]",
            title=f"[bold]Migration status ({settings.prompts.memory_index_name})[/bold]",
            border_style=style,
        )
    )
