from __future__ import annotations

from typing import Generic, TypeVar

from chatmemory.common.enums import ChatStoreType
from chatmemory.config.settings import ChatStoreOptions, ConfigError
from chatmemory.services.chat.models import ChatSession, MemorySource, StorageEntity
from chatmemory.services.chat.storage import (
    FileSystemContext,
    StorageContext,
    VolatileContext,
    file_path_for,
)

T = TypeVar("T", bound=StorageEntity)

CHAT_SESSIONS_FILE = "chatsessions.json"
MEMORY_SOURCES_FILE = "chatmemorysources.json"


class Repository(Generic[T]):
    """Thin CRUD facade over a storage context."""

    def __init__(self, context: StorageContext[T]) -> None:
        self._context = context

    async def create(self, entity: T) -> T:
        if not entity.id.strip():
            raise ValueError("Entity id cannot be empty.")
        await self._context.create(entity)
        return entity

    async def upsert(self, entity: T) -> T:
        await self._context.upsert(entity)
        return entity

    async def delete(self, entity: T) -> None:
        await self._context.delete(entity)

    async def find_by_id(self, entity_id: str) -> T:
        return await self._context.read(entity_id)

    async def get_all(self) -> list[T]:
        return await self._context.query_entities(lambda _: True)


class ChatSessionRepository(Repository[ChatSession]):
    async def get_all_chats(self) -> list[ChatSession]:
        return await self.get_all()


class ChatMemorySourceRepository(Repository[MemorySource]):
    async def find_by_chat_id(self, chat_id: str) -> list[MemorySource]:
        return await self._context.query_entities(lambda s: s.chat_id == chat_id)


def build_chat_repositories(
    options: ChatStoreOptions,
) -> tuple[ChatSessionRepository, ChatMemorySourceRepository]:
    """Create the session and memory-source repositories for the configured store."""
    if options.type == ChatStoreType.VOLATILE:
        return (
            ChatSessionRepository(VolatileContext[ChatSession]()),
            ChatMemorySourceRepository(VolatileContext[MemorySource]()),
        )
    if options.type == ChatStoreType.FILESYSTEM:
        if not options.file_path:
            raise ConfigError(
                "Chat store type is 'filesystem' but no file_path was provided."
            )
        return (
            ChatSessionRepository(
                FileSystemContext(file_path_for(options.file_path, CHAT_SESSIONS_FILE), ChatSession)
            ),
            ChatMemorySourceRepository(
                FileSystemContext(
                    file_path_for(options.file_path, MEMORY_SOURCES_FILE), MemorySource
                )
            ),
        )
    raise ConfigError(f"Invalid chat store type {options.type!r}.")
