"""ChromaDB implementation of the memory store.

Each logical index is a Chroma collection. The Chroma client is synchronous,
so every call runs off the event loop via `asyncio.to_thread`. Match-all
searches page through `collection.get(...)` so large collections are never
pulled into memory at once; relevance searches use `collection.query(...)` and
report `1 - distance` as the score (cosine space).

`chromadb` is an optional dependency (`pip install chatmemory[chroma]`) and is
only imported when a client has to be created.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Mapping, Optional, TypeVar

from chatmemory.core.structured_logging import get_logger
from chatmemory.services.memory.errors import MemoryIndexError, MemoryStoreError
from chatmemory.services.memory.models import MATCH_ALL_QUERY, NO_MIN_SCORE, MemoryRecord

if TYPE_CHECKING:
    from chatmemory.config.settings import ChromaStoreOptions
    from chatmemory.services.memory.embeddings import EmbeddingGenerator

STORE_NAME = "chroma"
PAGE_SIZE = 100
MIN_COLLECTION_NAME_LENGTH = 3
MAX_COLLECTION_NAME_LENGTH = 63
DEFAULT_QUERY_RESULTS = 50
COLLECTION_METADATA = {"hnsw:space": "cosine"}

_INVALID_COLLECTION_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_NOT_FOUND_MARKERS = ("does not exist", "not found", "notfound", "invalidcollection")

logger = get_logger(__name__)

T = TypeVar("T")


def normalize_collection_name(index_name: str) -> str:
    """Map a logical index name onto Chroma's collection naming rules."""
    name = _INVALID_COLLECTION_CHARS.sub("-", index_name.strip()).replace("..", "-")
    name = name.strip("-._")
    if not name:
        raise MemoryIndexError(STORE_NAME, index_name, "empty after normalization")
    if len(name) > MAX_COLLECTION_NAME_LENGTH:
        raise MemoryIndexError(
            STORE_NAME,
            index_name,
            f"longer than {MAX_COLLECTION_NAME_LENGTH} characters",
        )
    if len(name) < MIN_COLLECTION_NAME_LENGTH:
        name = f"{name}-idx"
    return name


def _is_missing_collection(exc: Exception) -> bool:
    text = f"{type(exc).__name__} {exc}".lower()
    return any(marker in text for marker in _NOT_FOUND_MARKERS)


class ChromaMemoryStore:
    """Memory store over a ChromaDB client (persistent or HTTP)."""

    def __init__(
        self,
        client: Any,
        *,
        embeddings: Optional["EmbeddingGenerator"] = None,
    ) -> None:
        self._client = client
        self._embeddings = embeddings

    @classmethod
    def from_options(cls, options: "ChromaStoreOptions") -> "ChromaMemoryStore":
        try:
            import chromadb  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "ChromaDB not installed. Install with: pip install 'chatmemory[chroma]'"
            ) from exc

        if options.host:
            client = chromadb.HttpClient(host=options.host, port=options.port)
        elif options.path:
            client = chromadb.PersistentClient(path=options.path)
        else:
            client = chromadb.EphemeralClient()
        return cls(client)

    # ------------------------------ Internals --------------------------------

    async def _run(self, operation: str, index_name: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except MemoryStoreError:
            raise
        except Exception as exc:
            raise MemoryStoreError(STORE_NAME, operation, str(exc), index_name) from exc

    def _find_collection(self, name: str) -> Any | None:
        try:
            return self._client.get_collection(name=name)
        except Exception as exc:
            if _is_missing_collection(exc):
                return None
            raise

    def _create_collection(self, name: str) -> Any:
        return self._client.get_or_create_collection(
            name=name, metadata=dict(COLLECTION_METADATA)
        )

    async def _embed(self, text: str, index_name: str) -> list[float]:
        if self._embeddings is None:
            raise MemoryStoreError(
                STORE_NAME, "embed", "no embedding generator configured", index_name
            )
        try:
            return await self._embeddings.embed(text)
        except Exception as exc:
            raise MemoryStoreError(STORE_NAME, "embed", str(exc), index_name) from exc

    @staticmethod
    def _to_record(
        key: str, text: Any, metadata: Any, relevance: float | None = None
    ) -> MemoryRecord:
        meta = {str(k): str(v) for k, v in (metadata or {}).items()}
        return MemoryRecord(id=str(key), text=str(text or ""), metadata=meta, relevance=relevance)

    # ------------------------------ Public API -------------------------------

    async def get(self, index_name: str, key: str) -> Optional[MemoryRecord]:
        name = normalize_collection_name(index_name)

        def _get() -> Optional[MemoryRecord]:
            collection = self._find_collection(name)
            if collection is None:
                return None
            found = collection.get(ids=[key], include=["documents", "metadatas"])
            ids = found.get("ids") or []
            if not ids:
                return None
            docs = found.get("documents") or [None]
            metas = found.get("metadatas") or [None]
            return self._to_record(ids[0], docs[0], metas[0])

        return await self._run("get", index_name, _get)

    async def put(
        self,
        index_name: str,
        key: str,
        text: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        name = normalize_collection_name(index_name)
        vector = await self._embed(text, index_name) if self._embeddings else None

        def _put() -> None:
            collection = self._create_collection(name)
            kwargs: dict[str, Any] = {
                "ids": [key],
                "documents": [text],
                # Chroma rejects empty metadata dicts.
                "metadatas": [dict(metadata)] if metadata else None,
            }
            if vector is not None:
                kwargs["embeddings"] = [vector]
            collection.upsert(**kwargs)

        await self._run("put", index_name, _put)
        logger.debug("Chroma memory stored", index_name=name, key=key)

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
        name = normalize_collection_name(index_name)
        collection = await self._run("search", index_name, lambda: self._find_collection(name))
        if collection is None:
            return

        if query.strip() == MATCH_ALL_QUERY:
            # Match-all rows all score 1.0.
            if min_score > 1.0:
                return
            emitted = 0
            offset = 0
            while True:
                page_size = PAGE_SIZE if limit is None else min(PAGE_SIZE, limit - emitted)
                page = await self._run(
                    "search",
                    index_name,
                    lambda o=offset, n=page_size: collection.get(
                        limit=n, offset=o, include=["documents", "metadatas"]
                    ),
                )
                ids = page.get("ids") or []
                if not ids:
                    return
                docs = page.get("documents") or [None] * len(ids)
                metas = page.get("metadatas") or [None] * len(ids)
                for key, doc, meta in zip(ids, docs, metas):
                    yield self._to_record(key, doc, meta, relevance=1.0)
                    emitted += 1
                    if limit is not None and emitted >= limit:
                        return
                if len(ids) < page_size:
                    return
                offset += len(ids)

        n_results = limit or DEFAULT_QUERY_RESULTS
        query_kwargs: dict[str, Any] = {
            "n_results": n_results,
            "include": ["documents", "metadatas", "distances"],
        }
        if self._embeddings is not None:
            query_kwargs["query_embeddings"] = [await self._embed(query, index_name)]
        else:
            query_kwargs["query_texts"] = [query]

        found = await self._run("search", index_name, lambda: collection.query(**query_kwargs))
        ids = (found.get("ids") or [[]])[0]
        docs = (found.get("documents") or [[None] * len(ids)])[0]
        metas = (found.get("metadatas") or [[None] * len(ids)])[0]
        distances = (found.get("distances") or [[0.0] * len(ids)])[0]
        for key, doc, meta, distance in zip(ids, docs, metas, distances):
            score = 1.0 - float(distance)
            if score < min_score:
                continue
            yield self._to_record(key, doc, meta, relevance=score)

    async def close(self) -> None:
        if self._embeddings is not None:
            await self._embeddings.close()
