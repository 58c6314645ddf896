"""Shared fixtures for the migration tests.

Everything runs against `VolatileMemoryStore` and volatile chat repositories.
Store subclasses below add the behaviours the migration has to cope with:
operations that fail on demand, operations that yield to the event loop (so
concurrent claimants interleave), and hooks that observe every write.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping, Optional

import pytest

from chatmemory.config.settings import MigrationOptions, PromptsOptions
from chatmemory.services.chat.models import ChatSession, MemorySource
from chatmemory.services.chat.repositories import (
    ChatMemorySourceRepository,
    ChatSessionRepository,
)
from chatmemory.services.chat.storage import VolatileContext
from chatmemory.services.memory.client import ConsolidatedMemoryClient
from chatmemory.services.memory.errors import MemoryStoreError
from chatmemory.services.memory.store import VolatileMemoryStore
from chatmemory.services.migration.service import ChatMemoryMigrationService


class FakeSleep:
    """Records requested delays instead of waiting.

    An optional hook runs during the "sleep", which is where a competing
    claimant would overwrite the sentinel.
    """

    def __init__(self, during: Optional[Callable[[], Awaitable[None]]] = None) -> None:
        self.calls: list[float] = []
        self._during = during

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._during is not None:
            await self._during()


class ScriptedMemoryStore(VolatileMemoryStore):
    """Volatile store with failure injection and write observation."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_get = 0
        self.fail_put = 0
        self.fail_put_index: Optional[str] = None
        self.put_log: list[tuple[str, str]] = []
        self.on_put: Optional[Callable[[str, str], Awaitable[None]]] = None

    async def get(self, index_name: str, key: str) -> Any:
        if self.fail_get:
            self.fail_get -= 1
            raise MemoryStoreError("scripted", "get", "boom", index_name)
        return await super().get(index_name, key)

    async def put(
        self,
        index_name: str,
        key: str,
        text: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        targeted = self.fail_put_index is None or self.fail_put_index == index_name
        if self.fail_put and targeted:
            self.fail_put -= 1
            raise MemoryStoreError("scripted", "put", "boom", index_name)
        if self.on_put is not None:
            await self.on_put(index_name, key)
        self.put_log.append((index_name, key))
        await super().put(index_name, key, text, metadata)


class YieldingMemoryStore(VolatileMemoryStore):
    """Volatile store whose calls suspend, like a network round trip."""

    async def get(self, index_name: str, key: str) -> Any:
        await asyncio.sleep(0)
        return await super().get(index_name, key)

    async def put(self, index_name: str, key: str, text: str, metadata: Any = None) -> None:
        await asyncio.sleep(0)
        await super().put(index_name, key, text, metadata)


@pytest.fixture
def prompts() -> PromptsOptions:
    return PromptsOptions()


@pytest.fixture
def store() -> ScriptedMemoryStore:
    return ScriptedMemoryStore()


@pytest.fixture
def chat_sessions() -> ChatSessionRepository:
    return ChatSessionRepository(VolatileContext[ChatSession]())


@pytest.fixture
def memory_sources() -> ChatMemorySourceRepository:
    return ChatMemorySourceRepository(VolatileContext[MemorySource]())


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def make_service(
    store: ScriptedMemoryStore,
    chat_sessions: ChatSessionRepository,
    memory_sources: ChatMemorySourceRepository,
    prompts: PromptsOptions,
    fake_sleep: FakeSleep,
) -> Callable[..., ChatMemoryMigrationService]:
    """Build a service over the shared fixtures; keyword args override them."""

    def _make(**overrides: Any) -> ChatMemoryMigrationService:
        memory_store = overrides.pop("memory_store", store)
        options = overrides.pop("options", MigrationOptions(claim_window_seconds=0.5))
        return ChatMemoryMigrationService(
            memory_store,
            ConsolidatedMemoryClient(memory_store),
            overrides.pop("chat_sessions", chat_sessions),
            overrides.pop("memory_sources", memory_sources),
            overrides.pop("prompts", prompts),
            options,
            sleep=overrides.pop("sleep", fake_sleep),
            **overrides,
        )

    return _make


async def seed_legacy_chat(
    store: VolatileMemoryStore,
    chat_sessions: ChatSessionRepository,
    chat_id: str,
    memories: Mapping[str, list[tuple[str, str]]],
) -> ChatSession:
    """Create a chat and its legacy per-type indexes.

    Args:
        memories: memory type -> [(record id, text), ...]
    """
    chat = await chat_sessions.create(ChatSession(id=chat_id, title=f"Chat {chat_id}"))
    for memory_type, records in memories.items():
        for record_id, text in records:
            await store.put(f"{chat_id}-{memory_type}", record_id, text)
    return chat


@pytest.fixture
def seed_chat(
    store: ScriptedMemoryStore, chat_sessions: ChatSessionRepository
) -> Callable[..., Awaitable[ChatSession]]:
    async def _seed(chat_id: str, memories: Mapping[str, list[tuple[str, str]]]) -> ChatSession:
        return await seed_legacy_chat(store, chat_sessions, chat_id, memories)

    return _seed


@pytest.fixture
def yielding_store() -> YieldingMemoryStore:
    return YieldingMemoryStore()


@pytest.fixture
def sleep_with() -> Callable[[Callable[[], Awaitable[None]]], FakeSleep]:
    """Build a FakeSleep that runs a hook while "sleeping"."""
    return FakeSleep
