from __future__ import annotations

from chatmemory.common.enums import ChatMigrationStatus
from chatmemory.config.settings import PromptsOptions
from chatmemory.core.structured_logging import get_logger
from chatmemory.services.memory.store import MemoryStore
from chatmemory.services.migration.service import MIGRATION_KEY, is_completion_token

logger = get_logger(__name__)


class ChatMigrationMonitor:
    """Reports whether the consolidated memory migration is still pending.

    Once the completion token has been observed the answer can never change,
    so the monitor stops reading the store from then on.
    """

    def __init__(self, memory_store: MemoryStore, prompts: PromptsOptions) -> None:
        self._store = memory_store
        self._index_name = prompts.memory_index_name
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    async def get_current_status(self) -> ChatMigrationStatus:
        """Return the migration status. Store errors propagate to the caller."""
        if self._completed:
            return ChatMigrationStatus.NONE

        record = await self._store.get(self._index_name, MIGRATION_KEY)
        if record is None:
            return ChatMigrationStatus.REQUIRES_UPGRADE
        if is_completion_token(record.text):
            logger.debug("Memory migration observed as completed", index_name=self._index_name)
            self._completed = True
            return ChatMigrationStatus.NONE
        return ChatMigrationStatus.UPGRADING
