"""Wire the migration service and monitor from `ChatMemorySettings`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from chatmemory.config.settings import ChatMemorySettings, MigrationOptions
from chatmemory.services.chat.repositories import build_chat_repositories
from chatmemory.services.memory.client import ConsolidatedMemoryClient
from chatmemory.services.memory.registry import build_memory_store
from chatmemory.services.memory.store import MemoryStore
from chatmemory.services.migration.monitor import ChatMigrationMonitor
from chatmemory.services.migration.service import ChatMemoryMigrationService


@dataclass
class MigrationRuntime:
    """The migration service and monitor sharing one memory store."""

    memory_store: MemoryStore
    service: ChatMemoryMigrationService
    monitor: ChatMigrationMonitor

    async def aclose(self) -> None:
        await self.memory_store.close()

    async def __aenter__(self) -> "MigrationRuntime":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def build_migration_runtime(
    settings: ChatMemorySettings,
    *,
    memory_store: Optional[MemoryStore] = None,
    migration_options: Optional[MigrationOptions] = None,
) -> MigrationRuntime:
    """Build the migration service and monitor for the configured back-ends.

    Args:
        settings: Loaded application settings.
        memory_store: Use this store instead of building the configured one.
        migration_options: Override `settings.migration` (CLI flags).

    Raises:
        ConfigError: If a selected back-end has no configuration.
    """
    sessions, sources = build_chat_repositories(settings.chat_store)
    store = memory_store if memory_store is not None else build_memory_store(settings.memory_store)
    service = ChatMemoryMigrationService(
        store,
        ConsolidatedMemoryClient(store),
        sessions,
        sources,
        settings.prompts,
        migration_options or settings.migration,
    )
    return MigrationRuntime(
        memory_store=store,
        service=service,
        monitor=ChatMigrationMonitor(store, settings.prompts),
    )
