from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StorageEntity(BaseModel):
    """Base for anything persisted through a storage context."""

    id: str = Field(default_factory=_new_id)

    @property
    def partition(self) -> str:
        return self.id


class ChatSession(StorageEntity):
    title: str = ""
    created_on: datetime = Field(default_factory=_utcnow)
    system_description: str = ""
    memory_balance: float = Field(0.5, ge=0.0, le=1.0)


class MemorySource(StorageEntity):
    """Tracks a document imported into a chat's memory (legacy model)."""

    chat_id: str
    name: str
    hyperlink: Optional[str] = None
    shared_by: str = ""
    created_on: datetime = Field(default_factory=_utcnow)
    size: int = Field(0, ge=0)
    tokens: int = Field(0, ge=0)

    @property
    def partition(self) -> str:
        return self.chat_id
