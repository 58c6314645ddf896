"""Tests for the ChromaDB memory store using a fake in-memory Chroma client."""

from __future__ import annotations

from typing import Any, Optional

import pytest

from chatmemory.services.memory.chroma_store import (
    PAGE_SIZE,
    ChromaMemoryStore,
    normalize_collection_name,
)
from chatmemory.services.memory.errors import MemoryIndexError, MemoryStoreError


class FakeCollection:
    def __init__(self, name: str) -> None:
        self.name = name
        self.rows: dict[str, tuple[str, Optional[dict[str, Any]]]] = {}
        self.get_calls: list[dict[str, Any]] = []

    def upsert(self, ids, documents, metadatas=None, embeddings=None) -> None:
        for i, key in enumerate(ids):
            meta = metadatas[i] if metadatas else None
            self.rows[key] = (documents[i], meta)

    def get(self, ids=None, limit=None, offset=None, include=None) -> dict[str, Any]:
        self.get_calls.append({"ids": ids, "limit": limit, "offset": offset})
        keys = list(self.rows)
        if ids is not None:
            keys = [k for k in keys if k in ids]
        else:
            start = offset or 0
            keys = keys[start : start + limit] if limit is not None else keys[start:]
        return {
            "ids": keys,
            "documents": [self.rows[k][0] for k in keys],
            "metadatas": [self.rows[k][1] for k in keys],
        }

    def query(self, n_results, include, query_texts=None, query_embeddings=None):
        terms = set((query_texts or [""])[0].lower().split())
        scored = []
        for key, (doc, meta) in self.rows.items():
            overlap = len(terms & set(doc.lower().split())) / max(len(terms), 1)
            scored.append((1.0 - overlap, key, doc, meta))
        scored.sort()
        scored = scored[:n_results]
        return {
            "ids": [[s[1] for s in scored]],
            "documents": [[s[2] for s in scored]],
            "metadatas": [[s[3] for s in scored]],
            "distances": [[s[0] for s in scored]],
        }


class FakeChromaClient:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}
        self.create_metadata: list[Any] = []

    def get_collection(self, name: str) -> FakeCollection:
        if name not in self.collections:
            raise ValueError(f"Collection {name} does not exist.")
        return self.collections[name]

    def get_or_create_collection(self, name: str, metadata=None) -> FakeCollection:
        self.create_metadata.append(metadata)
        return self.collections.setdefault(name, FakeCollection(name))


@pytest.fixture
def chroma_client() -> FakeChromaClient:
    return FakeChromaClient()


@pytest.fixture
def chroma_store(chroma_client: FakeChromaClient) -> ChromaMemoryStore:
    return ChromaMemoryStore(chroma_client)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("chatmemory", "chatmemory"),
        ("chat id/LongTermMemory", "chat-id-LongTermMemory"),
        ("ab", "ab-idx"),
    ],
)
def test_normalize_collection_name(raw: str, expected: str) -> None:
    assert normalize_collection_name(raw) == expected


def test_normalize_collection_name_rejects_unusable_names() -> None:
    with pytest.raises(MemoryIndexError):
        normalize_collection_name("...")
    with pytest.raises(MemoryIndexError):
        normalize_collection_name("x" * 64)


@pytest.mark.asyncio
async def test_put_then_get_roundtrip(chroma_store, chroma_client) -> None:
    await chroma_store.put("chatmemory", "k1", "hello", {"chat_id": "c1"})
    await chroma_store.put("chatmemory", "k2", "bare")

    record = await chroma_store.get("chatmemory", "k1")
    bare = await chroma_store.get("chatmemory", "k2")

    assert record is not None and record.text == "hello"
    assert record.metadata == {"chat_id": "c1"}
    assert bare is not None and bare.metadata == {}
    assert chroma_client.create_metadata[0] == {"hnsw:space": "cosine"}


@pytest.mark.asyncio
async def test_get_from_missing_collection_returns_none(chroma_store) -> None:
    assert await chroma_store.get("never-created", "k") is None
    assert [r async for r in chroma_store.search("never-created")] == []


@pytest.mark.asyncio
async def test_match_all_search_pages_through_everything(chroma_store, chroma_client) -> None:
    total = PAGE_SIZE * 2 + 7
    for i in range(total):
        await chroma_store.put("legacy", f"k{i}", f"text {i}")

    rows = [r async for r in chroma_store.search("legacy", "*", limit=None, min_score=-1)]

    assert len(rows) == total
    assert len({r.id for r in rows}) == total
    offsets = [c["offset"] for c in chroma_client.collections["legacy"].get_calls]
    assert offsets == [0, PAGE_SIZE, PAGE_SIZE * 2]


@pytest.mark.asyncio
async def test_match_all_search_respects_limit(chroma_store) -> None:
    for i in range(5):
        await chroma_store.put("legacy", f"k{i}", f"text {i}")

    rows = [r async for r in chroma_store.search("legacy", "*", limit=3)]

    assert [r.id for r in rows] == ["k0", "k1", "k2"]


@pytest.mark.asyncio
async def test_relevance_search_scores_and_filters(chroma_store) -> None:
    await chroma_store.put("idx", "a", "green tea")
    await chroma_store.put("idx", "b", "black coffee")

    rows = [r async for r in chroma_store.search("idx", "green tea", min_score=0.5)]

    assert [r.id for r in rows] == ["a"]
    assert rows[0].relevance == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_client_errors_become_memory_store_errors(chroma_store, chroma_client) -> None:
    def _boom(*args: Any, **kwargs: Any) -> Any:
        raise RuntimeError("connection refused")

    chroma_client.get_or_create_collection = _boom

    with pytest.raises(MemoryStoreError) as excinfo:
        await chroma_store.put("idx", "k", "text")

    assert excinfo.value.store == "chroma"
    assert excinfo.value.operation == "put"


@pytest.mark.asyncio
async def test_embed_without_generator_raises_store_error(chroma_store) -> None:
    with pytest.raises(MemoryStoreError, match="no embedding generator configured") as excinfo:
        await chroma_store._embed("text", "idx")

    assert excinfo.value.operation == "embed"
