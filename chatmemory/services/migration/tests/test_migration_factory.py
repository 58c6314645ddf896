from __future__ import annotations

import pytest

from chatmemory.common.enums import ChatStoreType, MigrationOutcome
from chatmemory.config.settings import (
    ChatMemorySettings,
    ChatStoreOptions,
    ConfigError,
    MemoryStoreOptions,
    MigrationOptions,
)
from chatmemory.services.chat.models import ChatSession
from chatmemory.services.chat.repositories import build_chat_repositories
from chatmemory.services.memory.store import VolatileMemoryStore
from chatmemory.services.migration.factory import build_migration_runtime


def _settings(**kwargs) -> ChatMemorySettings:
    return ChatMemorySettings(_env_file=None, **kwargs)


@pytest.mark.asyncio
async def test_runtime_shares_one_store_between_service_and_monitor() -> None:
    store = VolatileMemoryStore()
    settings = _settings(migration=MigrationOptions(claim_window_seconds=0))

    async with build_migration_runtime(settings, memory_store=store) as runtime:
        assert runtime.memory_store is store
        result = await runtime.service.migrate()
        status = await runtime.monitor.get_current_status()

    assert result.outcome is MigrationOutcome.COMPLETED
    assert status.value == "none"


def test_default_settings_build_volatile_backends() -> None:
    runtime = build_migration_runtime(_settings())

    assert isinstance(runtime.memory_store, VolatileMemoryStore)
    assert runtime.service.claim.index_name == "chatmemory"


def test_missing_backend_configuration_raises_config_error() -> None:
    with pytest.raises(ConfigError):
        build_migration_runtime(
            _settings(memory_store=MemoryStoreOptions(type="azure_search"))
        )


@pytest.mark.asyncio
async def test_filesystem_chat_store_is_migrated_from_disk(tmp_path) -> None:
    chat_store = ChatStoreOptions(type=ChatStoreType.FILESYSTEM, file_path=str(tmp_path))
    sessions, _ = build_chat_repositories(chat_store)
    await sessions.create(ChatSession(id="chat-1", title="On disk"))

    store = VolatileMemoryStore()
    await store.put("chat-1-WorkingMemory", "m1", "remember the milk")
    settings = _settings(
        chat_store=chat_store, migration=MigrationOptions(claim_window_seconds=0)
    )

    async with build_migration_runtime(settings, memory_store=store) as runtime:
        result = await runtime.service.migrate()

    assert result.outcome is MigrationOutcome.COMPLETED
    assert result.copied == 1
