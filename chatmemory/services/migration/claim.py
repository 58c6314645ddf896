"""Best-effort leader claim over a store without compare-and-swap.

The memory store offers plain overwrite-by-key with eventual consistency, so
mutual exclusion is approximated: write a fresh token under a well-known key,
wait for concurrent writers' values to settle, read the key back and win only
if our own token survived.

This is racy by construction. If replicas have not converged within the
window, two instances can each read back their own token and both proceed.
The claim window is a heuristic bound, not a guarantee. Work guarded by the
claim must therefore be safe to run twice (the memory copy is a keyed upsert).
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Awaitable, Callable, Optional

from chatmemory.core.structured_logging import get_logger
from chatmemory.services.memory.store import MemoryStore

SleepFn = Callable[[float], Awaitable[None]]
TokenFactory = Callable[[], str]

logger = get_logger(__name__)


def new_claim_token() -> str:
    return str(uuid.uuid4())


class BestEffortLeaderClaim:
    """Write-wait-reread claim on a single sentinel key."""

    def __init__(
        self,
        store: MemoryStore,
        index_name: str,
        key: str,
        *,
        window_seconds: float = 5.0,
        sleep: SleepFn = asyncio.sleep,
        token_factory: TokenFactory = new_claim_token,
    ) -> None:
        """Initialize the claim.

        Args:
            store: The shared store holding the sentinel record.
            index_name: Index of the sentinel record.
            key: Key of the sentinel record.
            window_seconds: Delay between writing a token and re-reading it.
            sleep: Coroutine used to wait out the window (tests inject a fake).
            token_factory: Source of fresh claim tokens.
        """
        self._store = store
        self._index_name = index_name
        self._key = key
        self._window_seconds = window_seconds
        self._sleep = sleep
        self._token_factory = token_factory

    @property
    def index_name(self) -> str:
        return self._index_name

    @property
    def key(self) -> str:
        return self._key

    async def read(self) -> Optional[str]:
        """Return the current sentinel token, or None when none was written."""
        record = await self._store.get(self._index_name, self._key)
        return None if record is None else record.text

    async def write(self, token: str) -> None:
        await self._store.put(self._index_name, self._key, token)

    async def try_claim(self) -> Optional[str]:
        """Attempt the claim.

        Returns:
            The token this instance wrote if it survived the window, else None.
        """
        token = self._token_factory()
        await self.write(token)
        # Let writes that are racing ours land before reading back.
        await self._sleep(self._window_seconds)
        observed = await self.read()

        if observed is not None and observed.casefold() == token.casefold():
            logger.info("Claim won", index_name=self._index_name, token=token)
            return token

        logger.info(
            "Claim lost",
            index_name=self._index_name,
            token=token,
            observed=observed,
        )
        return None
