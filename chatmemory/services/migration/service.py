"""One-time migration of legacy chat memories into the consolidated index.

Older deployments stored each chat's memories in one index per memory type,
named `"{chat_id}-{memory_type}"`. The current layout keeps all of them in the
single index `PromptsOptions.memory_index_name`. `ChatMemoryMigrationService`
moves the data once per deployment, however many process instances run it:

1. Probe: read the sentinel record (`MIGRATION_KEY` in the consolidated
   index). The completion token means there is nothing to do. Any other token
   means another instance claimed the work, and this one backs off.
2. Claim: with no sentinel, run a `BestEffortLeaderClaim`. Only the winner
   continues. A store failure while probing or claiming counts as losing.
3. Remove the legacy document memory-source records. This is irreversible
   and happens before the copy.
4. Copy: stream every record of every chat's legacy indexes into the
   consolidated index, keyed by (chat id, memory type, record id). A re-run
   overwrites rather than duplicates.
5. Finalize: write the completion token, whatever the number of records.

A failure after the claim aborts without writing the completion token. The
sentinel then still holds the claimant's token, so other instances keep
backing off; `migrate(force=True)` skips the claim and completes the run
(the memory sources are already gone by then and the copy is idempotent).

Usage:
    service = ChatMemoryMigrationService(store, client, sessions, sources, prompts)
    result = await run_migration(service)          # background hook, never raises
    result = await service.migrate(cancel_event)   # raises MigrationError
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import AsyncIterator, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict

from chatmemory.common.enums import MigrationOutcome
from chatmemory.config.settings import MigrationOptions, PromptsOptions
from chatmemory.core.structured_logging import get_logger
from chatmemory.services.chat.models import MemorySource
from chatmemory.services.chat.repositories import (
    ChatMemorySourceRepository,
    ChatSessionRepository,
)
from chatmemory.services.chat.storage import EntityNotFoundError
from chatmemory.services.memory.client import ConsolidatedMemoryClient
from chatmemory.services.memory.errors import MemoryStoreError
from chatmemory.services.memory.models import MATCH_ALL_QUERY, NO_MIN_SCORE
from chatmemory.services.memory.store import MemoryStore
from chatmemory.services.migration.claim import (
    BestEffortLeaderClaim,
    SleepFn,
    TokenFactory,
    new_claim_token,
)
from chatmemory.services.migration.errors import (
    MigrationCancelledError,
    MigrationError,
    MigrationFailedError,
    MigrationPhase,
)

MIGRATION_KEY = "migrate-00000000-0000-0000-0000-000000000000"
MIGRATION_COMPLETION_TOKEN = "37d1ad0e-ab64-4e91-9d3c-b0f4ae3f0ae5"
MIGRATION_TASK_NAME = "chat-memory-migration"

logger = get_logger(__name__)


class LegacyMemory(NamedTuple):
    chat_id: str
    memory_type: str
    memory_id: str
    text: str


class MigrationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: MigrationOutcome
    copied: int = 0
    removed_sources: int = 0
    token: Optional[str] = None
    error: Optional[str] = None


def legacy_index_name(chat_id: str, memory_type: str) -> str:
    return f"{chat_id}-{memory_type}"


def is_completion_token(value: Optional[str]) -> bool:
    return value is not None and value.casefold() == MIGRATION_COMPLETION_TOKEN.casefold()


def _raise_if_cancelled(cancel_event: Optional[asyncio.Event], phase: MigrationPhase) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise MigrationCancelledError(phase)


class ChatMemoryMigrationService:
    """Moves legacy per-chat memories into the consolidated memory index."""

    def __init__(
        self,
        memory_store: MemoryStore,
        memory_client: ConsolidatedMemoryClient,
        chat_session_repository: ChatSessionRepository,
        memory_source_repository: ChatMemorySourceRepository,
        prompts: PromptsOptions,
        options: Optional[MigrationOptions] = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        token_factory: TokenFactory = new_claim_token,
    ) -> None:
        self._store = memory_store
        self._memory_client = memory_client
        self._chat_sessions = chat_session_repository
        self._memory_sources = memory_source_repository
        self._prompts = prompts
        self._options = options or MigrationOptions()
        self._claim = BestEffortLeaderClaim(
            memory_store,
            prompts.memory_index_name,
            MIGRATION_KEY,
            window_seconds=self._options.claim_window_seconds,
            sleep=sleep,
            token_factory=token_factory,
        )

    @property
    def claim(self) -> BestEffortLeaderClaim:
        return self._claim

    async def migrate(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        *,
        force: bool = False,
    ) -> MigrationResult:
        """Run the migration if this instance should.

        Args:
            cancel_event: Checked between phases and before every store call;
                when set, the run stops with `MigrationCancelledError`.
            force: Skip the claim and migrate even if another token is present.
                Never overrides a completed migration.

        Returns:
            The outcome. Not migrating (already done, claimed elsewhere, race
            lost) is a normal result, not an error.

        Raises:
            MigrationFailedError: A store or repository call failed after the
                claim was won; the completion token was not written.
            MigrationCancelledError: `cancel_event` was set.
        """
        _raise_if_cancelled(cancel_event, MigrationPhase.PROBE)
        try:
            current = await self._claim.read()
        except MemoryStoreError as exc:
            logger.warning("Migration probe failed; backing off", **exc.snapshot())
            return MigrationResult(outcome=MigrationOutcome.LOST_RACE, error=str(exc))

        if is_completion_token(current):
            logger.debug("Memory migration already completed")
            return MigrationResult(outcome=MigrationOutcome.ALREADY_MIGRATED)

        token: Optional[str] = None
        if force:
            logger.warning("Forcing memory migration without a claim", observed=current)
        elif current is not None:
            logger.info("Memory migration claimed by another instance", observed=current)
            return MigrationResult(outcome=MigrationOutcome.CLAIMED_ELSEWHERE, token=current)
        else:
            _raise_if_cancelled(cancel_event, MigrationPhase.CLAIM)
            try:
                token = await self._claim.try_claim()
            except MemoryStoreError as exc:
                logger.warning("Migration claim failed; backing off", **exc.snapshot())
                return MigrationResult(outcome=MigrationOutcome.LOST_RACE, error=str(exc))
            if token is None:
                return MigrationResult(outcome=MigrationOutcome.LOST_RACE)

        _raise_if_cancelled(cancel_event, MigrationPhase.REMOVE_SOURCES)
        removed = await self._remove_memory_sources()

        copied = await self._copy_with_attempts(cancel_event)

        _raise_if_cancelled(cancel_event, MigrationPhase.FINALIZE)
        try:
            await self._claim.write(MIGRATION_COMPLETION_TOKEN)
        except MemoryStoreError as exc:
            raise MigrationFailedError(
                MigrationPhase.FINALIZE, str(exc), {"copied": copied}
            ) from exc

        logger.info(
            "Memory migration completed",
            copied=copied,
            removed_sources=removed,
            index_name=self._prompts.memory_index_name,
        )
        return MigrationResult(
            outcome=MigrationOutcome.COMPLETED,
            copied=copied,
            removed_sources=removed,
            token=token,
        )

    # ------------------------------ Phases ---------------------------------

    async def _remove_memory_sources(self) -> int:
        async def _delete(source: MemorySource) -> None:
            try:
                await self._memory_sources.delete(source)
            except EntityNotFoundError:
                logger.debug("Memory source already removed", source_id=source.id)

        try:
            sources = await self._memory_sources.get_all()
            results = await asyncio.gather(
                *(_delete(s) for s in sources), return_exceptions=True
            )
        except (OSError, ValueError) as exc:
            # ValueError covers unreadable storage (bad JSON, invalid entities).
            raise MigrationFailedError(MigrationPhase.REMOVE_SOURCES, str(exc)) from exc

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            raise MigrationFailedError(
                MigrationPhase.REMOVE_SOURCES,
                str(failures[0]),
                {"failed": len(failures), "total": len(sources)},
            ) from failures[0]

        logger.info("Legacy memory sources removed", count=len(sources))
        return len(sources)

    async def _query_memories(
        self, cancel_event: Optional[asyncio.Event]
    ) -> AsyncIterator[LegacyMemory]:
        try:
            chats = await self._chat_sessions.get_all_chats()
        except ValueError as exc:
            raise MigrationFailedError(
                MigrationPhase.COPY, f"chat sessions unreadable: {exc}"
            ) from exc
        for chat in chats:
            for memory_type in self._prompts.memory_types:
                _raise_if_cancelled(cancel_event, MigrationPhase.COPY)
                records = self._store.search(
                    legacy_index_name(chat.id, memory_type),
                    MATCH_ALL_QUERY,
                    limit=None,
                    min_score=NO_MIN_SCORE,
                )
                async for record in records:
                    yield LegacyMemory(chat.id, memory_type, record.id, record.text)

    async def _copy_memories(self, cancel_event: Optional[asyncio.Event]) -> int:
        copied = 0
        async with contextlib.aclosing(self._query_memories(cancel_event)) as memories:
            async for memory in memories:
                _raise_if_cancelled(cancel_event, MigrationPhase.COPY)
                # Keyed by the original id, so a retried copy overwrites.
                await self._memory_client.store_memory(
                    self._prompts.memory_index_name,
                    memory.chat_id,
                    memory.memory_type,
                    memory.memory_id,
                    memory.text,
                )
                copied += 1
        return copied

    async def _copy_with_attempts(self, cancel_event: Optional[asyncio.Event]) -> int:
        attempts = self._options.copy_attempts
        last_exc: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                return await self._copy_memories(cancel_event)
            except (MemoryStoreError, OSError) as exc:
                last_exc = exc
                logger.warning(
                    "Memory copy attempt failed",
                    attempt=attempt,
                    attempts=attempts,
                    error=str(exc),
                )
        raise MigrationFailedError(
            MigrationPhase.COPY, str(last_exc), {"attempts": attempts}
        ) from last_exc


async def run_migration(
    service: ChatMemoryMigrationService,
    cancel_event: Optional[asyncio.Event] = None,
    *,
    force: bool = False,
) -> MigrationResult:
    """Run the migration as a background maintenance step.

    Failures are logged and reported in the result instead of raised, so the
    hosting process keeps serving.
    """
    try:
        return await service.migrate(cancel_event, force=force)
    except MigrationCancelledError as exc:
        logger.warning("Memory migration cancelled", phase=exc.phase.value)
        return MigrationResult(outcome=MigrationOutcome.CANCELLED, error=str(exc))
    except MigrationFailedError as exc:
        logger.error(
            "Memory migration failed",
            phase=exc.phase.value,
            exc_info=True,
            **exc.snapshot,
        )
        return MigrationResult(outcome=MigrationOutcome.FAILED, error=str(exc))
    except MigrationError as exc:
        logger.error("Memory migration failed", exc_info=True)
        return MigrationResult(outcome=MigrationOutcome.FAILED, error=str(exc))
    except Exception as exc:
        logger.error("Memory migration failed unexpectedly", exc_info=True)
        return MigrationResult(outcome=MigrationOutcome.FAILED, error=str(exc))


def start_background_migration(
    service: ChatMemoryMigrationService,
    cancel_event: Optional[asyncio.Event] = None,
) -> "asyncio.Task[MigrationResult]":
    """Schedule `run_migration` on the running loop (startup hook)."""
    return asyncio.create_task(run_migration(service, cancel_event), name=MIGRATION_TASK_NAME)
