"""Client for the consolidated memory index.

All chat memories live in one index. A memory is identified by the triple
(chat id, memory type, memory id); `consolidated_memory_key` turns that triple
into a deterministic store key so storing the same memory twice overwrites it
instead of adding a copy. The triple is also kept in the record metadata so
memories can be filtered by chat and type when read back.
"""

from __future__ import annotations

import uuid
from typing import AsyncIterator, Optional

from chatmemory.core.structured_logging import get_logger
from chatmemory.services.memory.models import MATCH_ALL_QUERY, NO_MIN_SCORE, MemoryRecord
from chatmemory.services.memory.store import MemoryStore

TAG_CHAT_ID = "chat_id"
TAG_MEMORY_TYPE = "memory_type"
TAG_MEMORY_ID = "memory_id"

# Fixed namespace so keys are stable across processes and releases.
MEMORY_KEY_NAMESPACE = uuid.UUID("3c4b8f0e-5d0a-4c52-9d8e-6a0f1c7e2b91")
_KEY_SEPARATOR = "\x1f"

logger = get_logger(__name__)


def consolidated_memory_key(chat_id: str, memory_type: str, memory_id: str) -> str:
    name = _KEY_SEPARATOR.join((chat_id, memory_type, memory_id))
    return str(uuid.uuid5(MEMORY_KEY_NAMESPACE, name))


class ConsolidatedMemoryClient:
    """Reads and writes chat memories in the consolidated index."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def store_memory(
        self,
        index_name: str,
        chat_id: str,
        memory_type: str,
        memory_id: str,
        text: str,
    ) -> str:
        """Upsert one memory and return the store key it was written under."""
        key = consolidated_memory_key(chat_id, memory_type, memory_id)
        await self._store.put(
            index_name,
            key,
            text,
            {
                TAG_CHAT_ID: chat_id,
                TAG_MEMORY_TYPE: memory_type,
                TAG_MEMORY_ID: memory_id,
            },
        )
        logger.debug(
            "Memory stored",
            index_name=index_name,
            chat_id=chat_id,
            memory_type=memory_type,
            memory_id=memory_id,
        )
        return key

    async def search_memories(
        self,
        index_name: str,
        chat_id: str,
        query: str = MATCH_ALL_QUERY,
        *,
        memory_type: Optional[str] = None,
        limit: Optional[int] = None,
        min_score: float = NO_MIN_SCORE,
    ) -> AsyncIterator[MemoryRecord]:
        """Yield the memories of one chat, optionally of a single type.

        Filtering happens client-side on the record metadata; `limit` applies
        to the filtered results.
        """
        emitted = 0
        async for record in self._store.search(index_name, query, min_score=min_score):
            if record.metadata.get(TAG_CHAT_ID) != chat_id:
                continue
            if memory_type is not None and record.metadata.get(TAG_MEMORY_TYPE) != memory_type:
                continue
            yield record
            emitted += 1
            if limit is not None and emitted >= limit:
                return
