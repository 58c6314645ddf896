"""Test the `chatmemory migration` commands.

The runtime factory is patched at the CLI seam so every command runs against
an in-process store; settings still go through `ChatMemorySettings`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from chatmemory.cli.main import app
from chatmemory.config.settings import ChatMemorySettings, MigrationOptions
from chatmemory.services.memory.errors import MemoryStoreError
from chatmemory.services.memory.store import VolatileMemoryStore
from chatmemory.services.migration.errors import MigrationFailedError, MigrationPhase
from chatmemory.services.migration.factory import MigrationRuntime, build_migration_runtime
from chatmemory.services.migration.monitor import ChatMigrationMonitor
from chatmemory.services.migration.service import MIGRATION_COMPLETION_TOKEN, MIGRATION_KEY

SEAM = "chatmemory.services.migration.cli.build_migration_runtime"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Run from an empty directory so no stray .env is picked up."""
    monkeypatch.chdir(tmp_path)
    for var in ("CHATMEMORY_MEMORY_STORE__TYPE", "CHATMEMORY_CHAT_STORE__TYPE"):
        monkeypatch.delenv(var, raising=False)


class _RuntimeRecorder:
    """Stand-in for the factory that builds over a fixed store."""

    def __init__(self, store: VolatileMemoryStore) -> None:
        self.store = store
        self.options: Optional[MigrationOptions] = None

    def __call__(
        self,
        settings: ChatMemorySettings,
        *,
        migration_options: Optional[MigrationOptions] = None,
    ) -> MigrationRuntime:
        self.options = migration_options
        return build_migration_runtime(
            settings, memory_store=self.store, migration_options=migration_options
        )


def test_help_lists_migration_commands() -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["migration", "--help"])

    assert result.exit_code == 0
    assert "run" in result.stdout
    assert "status" in result.stdout


def test_run_completes_and_applies_flag_overrides() -> None:
    store = VolatileMemoryStore()
    recorder = _RuntimeRecorder(store)

    with patch(SEAM, side_effect=recorder):
        result = CliRunner().invoke(
            app, ["migration", "run", "--claim-window", "0", "--copy-attempts", "3"]
        )

    assert result.exit_code == 0, result.output
    assert "completed" in result.output
    assert recorder.options == MigrationOptions(claim_window_seconds=0, copy_attempts=3)


def test_run_backs_off_when_claimed_elsewhere_and_force_overrides() -> None:
    store = VolatileMemoryStore()
    recorder = _RuntimeRecorder(store)

    async def _seed() -> None:
        await store.put("chatmemory", MIGRATION_KEY, "stale-token")

    asyncio.run(_seed())

    with patch(SEAM, side_effect=recorder):
        backed_off = CliRunner().invoke(app, ["migration", "run", "--claim-window", "0"])
        forced = CliRunner().invoke(app, ["migration", "run", "--force"])

    assert backed_off.exit_code == 0
    assert "claimed_elsewhere" in backed_off.output
    assert forced.exit_code == 0, forced.output
    assert "completed" in forced.output

    record = asyncio.run(store.get("chatmemory", MIGRATION_KEY))
    assert record is not None and record.text == MIGRATION_COMPLETION_TOKEN


def test_run_exits_1_when_migration_fails() -> None:
    store = VolatileMemoryStore()

    class _FailingService:
        async def migrate(self, cancel_event: Any = None, *, force: bool = False) -> Any:
            raise MigrationFailedError(MigrationPhase.COPY, "store unavailable")

    runtime = MigrationRuntime(
        memory_store=store,
        service=_FailingService(),  # type: ignore[arg-type]
        monitor=ChatMigrationMonitor(store, ChatMemorySettings().prompts),
    )

    with patch(SEAM, return_value=runtime):
        result = CliRunner().invoke(app, ["migration", "run"])

    assert result.exit_code == 1
    assert "failed" in result.output
    assert "--verbose" in result.output


def test_run_exits_1_on_invalid_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATMEMORY_MEMORY_STORE__TYPE", "not-a-store")

    result = CliRunner().invoke(app, ["migration", "run"])

    assert result.exit_code == 1
    assert "Configuration Validation Error" in result.output


def test_run_exits_1_when_backend_config_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATMEMORY_CHAT_STORE__TYPE", "filesystem")

    result = CliRunner().invoke(app, ["migration", "run"])

    assert result.exit_code == 1
    assert "Configuration failed" in result.output


def test_status_reports_requires_upgrade_then_none() -> None:
    store = VolatileMemoryStore()
    recorder = _RuntimeRecorder(store)

    with patch(SEAM, side_effect=recorder):
        before = CliRunner().invoke(app, ["migration", "status"])
        CliRunner().invoke(app, ["migration", "run", "--claim-window", "0"])
        after = CliRunner().invoke(app, ["migration", "status"])

    assert before.exit_code == 0
    assert "requires_upgrade" in before.output
    assert after.exit_code == 0
    assert "none" in after.output
    assert "requires_upgrade" not in after.output


def test_status_exits_1_when_store_unreachable() -> None:
    class _DownStore(VolatileMemoryStore):
        async def get(self, index_name: str, key: str) -> Any:
            raise MemoryStoreError("down", "get", "unreachable", index_name)

    recorder = _RuntimeRecorder(_DownStore())

    with patch(SEAM, side_effect=recorder):
        result = CliRunner().invoke(app, ["migration", "status"])

    assert result.exit_code == 1
    assert "Could not read the migration sentinel" in result.output
