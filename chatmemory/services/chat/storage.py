"""Storage contexts behind the chat repositories.

A storage context persists one entity type. Two are provided:

- `VolatileContext`: an in-process dict, for tests and throwaway runs.
- `FileSystemContext`: the same dict mirrored to a JSON file after every
  change. File I/O runs off the event loop and writes go through a temp file
  plus `replace()` so a crash never leaves a truncated file.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Callable, Generic, Optional, Protocol, TypeVar

from chatmemory.core.structured_logging import get_logger
from chatmemory.services.chat.models import StorageEntity

T = TypeVar("T", bound=StorageEntity)

logger = get_logger(__name__)


class EntityNotFoundError(KeyError):
    """Raised when reading or deleting an entity that does not exist."""

    def __init__(self, entity_id: str) -> None:
        super().__init__(entity_id)
        self.entity_id = entity_id


class StorageContext(Protocol[T]):
    async def query_entities(self, predicate: Callable[[T], bool]) -> list[T]: ...

    async def create(self, entity: T) -> None: ...

    async def upsert(self, entity: T) -> None: ...

    async def read(self, entity_id: str) -> T: ...

    async def delete(self, entity: T) -> None: ...


class VolatileContext(Generic[T]):
    def __init__(self) -> None:
        self._entities: dict[str, T] = {}

    async def query_entities(self, predicate: Callable[[T], bool]) -> list[T]:
        return [e for e in list(self._entities.values()) if predicate(e)]

    async def create(self, entity: T) -> None:
        if entity.id in self._entities:
            raise ValueError(f"Entity {entity.id!r} already exists.")
        self._entities[entity.id] = entity

    async def upsert(self, entity: T) -> None:
        self._entities[entity.id] = entity

    async def read(self, entity_id: str) -> T:
        try:
            return self._entities[entity_id]
        except KeyError:
            raise EntityNotFoundError(entity_id) from None

    async def delete(self, entity: T) -> None:
        if self._entities.pop(entity.id, None) is None:
            raise EntityNotFoundError(entity.id)


class FileSystemContext(VolatileContext[T]):
    """Volatile context persisted to a JSON file."""

    def __init__(self, file_path: str | os.PathLike[str], model: type[T]) -> None:
        super().__init__()
        self._path = Path(file_path)
        self._model = model
        self._lock = asyncio.Lock()
        self._loaded = False

    def _load_sync(self) -> dict[str, T]:
        if not self._path.exists():
            return {}
        raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        return {k: self._model.model_validate(v) for k, v in raw.items()}

    def _save_sync(self, entities: dict[str, T]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {k: v.model_dump(mode="json") for k, v in entities.items()}
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(self._path)

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._entities = await asyncio.to_thread(self._load_sync)
            self._loaded = True
            logger.debug("Chat storage loaded", path=str(self._path), count=len(self._entities))

    async def _persist(self, entities: dict[str, T]) -> None:
        await asyncio.to_thread(self._save_sync, entities)

    async def query_entities(self, predicate: Callable[[T], bool]) -> list[T]:
        async with self._lock:
            await self._ensure_loaded()
            return await super().query_entities(predicate)

    async def create(self, entity: T) -> None:
        async with self._lock:
            await self._ensure_loaded()
            if entity.id in self._entities:
                raise ValueError(f"Entity {entity.id!r} already exists.")
            await self._persist({**self._entities, entity.id: entity})
            self._entities[entity.id] = entity

    async def upsert(self, entity: T) -> None:
        async with self._lock:
            await self._ensure_loaded()
            await self._persist({**self._entities, entity.id: entity})
            self._entities[entity.id] = entity

    async def read(self, entity_id: str) -> T:
        async with self._lock:
            await self._ensure_loaded()
            return await super().read(entity_id)

    async def delete(self, entity: T) -> None:
        async with self._lock:
            await self._ensure_loaded()
            if entity.id not in self._entities:
                raise EntityNotFoundError(entity.id)
            # Memory changes only after the file write succeeds.
            remaining = {k: v for k, v in self._entities.items() if k != entity.id}
            await self._persist(remaining)
            self._entities = remaining


def file_path_for(directory: Optional[str], file_name: str) -> Path:
    return Path(directory or ".") / file_name
