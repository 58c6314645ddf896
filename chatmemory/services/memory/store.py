"""The memory store interface and its in-process implementation.

A memory store is an opaque key/text store with relevance search, partitioned
into named indexes. Back-ends only have to provide four coroutine-style
operations:

- `get(index, key)`: direct lookup; a missing index or key yields `None`.
- `put(index, key, text, metadata)`: upsert; re-putting a key overwrites it.
- `search(index, query, limit=None, min_score=-1)`: an async iterator of
  records. `"*"` matches everything, `limit=None` is unbounded and a negative
  `min_score` keeps every row. A missing index yields nothing. Each call
  starts a fresh iteration, so callers can restart a scan by calling again.
- `close()`: release network clients.

`VolatileMemoryStore` keeps everything in a dict and is used for local runs
and tests.
"""

from __future__ import annotations

from typing import AsyncIterator, Mapping, Optional, Protocol, runtime_checkable

from chatmemory.core.structured_logging import get_logger
from chatmemory.services.memory.models import MATCH_ALL_QUERY, NO_MIN_SCORE, MemoryRecord

logger = get_logger(__name__)


@runtime_checkable
class MemoryStore(Protocol):
    """Structural interface implemented by every memory store back-end."""

    async def get(self, index_name: str, key: str) -> Optional[MemoryRecord]: ...

    async def put(
        self,
        index_name: str,
        key: str,
        text: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None: ...

    def search(
        self,
        index_name: str,
        query: str = MATCH_ALL_QUERY,
        *,
        limit: Optional[int] = None,
        min_score: float = NO_MIN_SCORE,
    ) -> AsyncIterator[MemoryRecord]: ...

    async def close(self) -> None: ...


def term_overlap_score(query: str, text: str) -> float:
    """Fraction of the query's terms found in `text` (case-insensitive)."""
    if query.strip() == MATCH_ALL_QUERY:
        return 1.0
    terms = {t for t in query.lower().split() if t}
    if not terms:
        return 0.0
    words = set(text.lower().split())
    return len(terms & words) / len(terms)


class VolatileMemoryStore:
    """Dict-backed memory store. Contents are lost when the process exits."""

    def __init__(self) -> None:
        self._indexes: dict[str, dict[str, MemoryRecord]] = {}

    async def get(self, index_name: str, key: str) -> Optional[MemoryRecord]:
        return self._indexes.get(index_name, {}).get(key)

    async def put(
        self,
        index_name: str,
        key: str,
        text: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        index = self._indexes.setdefault(index_name, {})
        index[key] = MemoryRecord(id=key, text=text, metadata=dict(metadata or {}))
        logger.debug("Volatile memory stored", index_name=index_name, key=key)

    async def search(
        self,
        index_name: str,
        query: str = MATCH_ALL_QUERY,
        *,
        limit: Optional[int] = None,
        min_score: float = NO_MIN_SCORE,
    ) -> AsyncIterator[MemoryRecord]:
        if limit is not None and limit <= 0:
            return
        # Snapshot so concurrent puts don't break iteration.
        records = list(self._indexes.get(index_name, {}).values())
        scored = [(term_overlap_score(query, r.text), r) for r in records]
        if query.strip() != MATCH_ALL_QUERY:
            scored.sort(key=lambda pair: pair[0], reverse=True)

        emitted = 0
        for score, record in scored:
            if score < min_score:
                continue
            yield record.model_copy(update={"relevance": score})
            emitted += 1
            if limit is not None and emitted >= limit:
                return

    def index_names(self) -> list[str]:
        return list(self._indexes)

    async def close(self) -> None:
        return None
