"""Azure AI Search implementation of the memory store.

Each logical index maps onto one Azure AI Search index with three fields
(`id`, `text`, `metadata`) plus an `embedding` vector field when an embedding
deployment is configured. Azure imposes naming rules that chat ids and memory
keys don't follow, so:

- index names are lowercased and every character outside `[a-z0-9-]` becomes a
  dash (`"Chat_1-LongTermMemory"` -> `"chat-1-longtermmemory"`);
- document keys are URL-safe base64 of the logical key (Azure keys only allow
  letters, digits, `_`, `-` and `=`), decoded again on the way out.

Indexes are created on first write. Reads against an index that doesn't exist
behave like reads of an empty index. All other `AzureError`s surface as
`MemoryStoreError`.
"""

from __future__ import annotations

import base64
import binascii
import inspect
import json
import re
from typing import TYPE_CHECKING, Any, AsyncIterator, Mapping, Optional

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.search.documents.indexes.models import (
    HnswAlgorithmConfiguration,
    SearchableField,
    SearchField,
    SearchFieldDataType,
    SearchIndex,
    SimpleField,
    VectorSearch,
    VectorSearchProfile,
)
from azure.search.documents.models import VectorizedQuery

from chatmemory.core.structured_logging import get_logger
from chatmemory.services.memory.errors import MemoryIndexError, MemoryStoreError
from chatmemory.services.memory.models import MATCH_ALL_QUERY, NO_MIN_SCORE, MemoryRecord

if TYPE_CHECKING:
    from chatmemory.config.settings import AzureSearchStoreOptions
    from chatmemory.services.memory.embeddings import EmbeddingGenerator

STORE_NAME = "azure_search"
FIELD_ID = "id"
FIELD_TEXT = "text"
FIELD_METADATA = "metadata"
FIELD_EMBEDDING = "embedding"
SCORE_FIELD = "@search.score"
VECTOR_PROFILE_NAME = "memory-vector-profile"
HNSW_CONFIG_NAME = "memory-hnsw"
MAX_INDEX_NAME_LENGTH = 128

_INVALID_INDEX_CHARS = re.compile(r"[^a-z0-9-]")
_REPEATED_DASHES = re.compile(r"-{2,}")

logger = get_logger(__name__)


def normalize_index_name(index_name: str) -> str:
    """Map a logical index name onto Azure AI Search's naming rules.

    Raises:
        MemoryIndexError: If nothing usable is left or the name is too long.
    """
    name = _INVALID_INDEX_CHARS.sub("-", index_name.strip().lower())
    name = _REPEATED_DASHES.sub("-", name).strip("-")
    if not name:
        raise MemoryIndexError(STORE_NAME, index_name, "empty after normalization")
    if len(name) > MAX_INDEX_NAME_LENGTH:
        raise MemoryIndexError(
            STORE_NAME, index_name, f"longer than {MAX_INDEX_NAME_LENGTH} characters"
        )
    return name


def encode_key(key: str) -> str:
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii")


def decode_key(encoded: str) -> str:
    try:
        return base64.urlsafe_b64decode(encoded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        # Documents written by other tools may carry raw keys.
        return encoded


class AzureSearchMemoryStore:
    """Memory store over Azure AI Search (async SDK)."""

    def __init__(
        self,
        client_builder: Any,
        *,
        embeddings: Optional["EmbeddingGenerator"] = None,
        vector_size: int = 1536,
        index_client: Any | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            client_builder: Object exposing `build(index_name)` (an async
                `SearchClient`) and `build_index_client()`.
            embeddings: Optional embedding generator; enables vector search.
            vector_size: Dimensions of the embedding field.
            index_client: Pre-built async `SearchIndexClient` (tests).
        """
        self._builder = client_builder
        self._embeddings = embeddings
        self._vector_size = vector_size
        self._index_client = index_client
        self._clients: dict[str, Any] = {}
        self._ready_indexes: set[str] = set()

    @classmethod
    def from_options(cls, options: "AzureSearchStoreOptions") -> "AzureSearchMemoryStore":
        from chatmemory.client.azure import AzureClientFactory
        from chatmemory.services.memory.embeddings import EmbeddingGenerator

        builder = AzureClientFactory.create_async_search_builder(options)
        embeddings = None
        if options.embeddings_enabled:
            embeddings = EmbeddingGenerator(
                AzureClientFactory.create_async_openai_client(options),
                str(options.embedding_deployment_name),
            )
        return cls(builder, embeddings=embeddings, vector_size=options.vector_size)

    # ------------------------------ Internals --------------------------------

    def _client(self, name: str) -> Any:
        client = self._clients.get(name)
        if client is None:
            client = self._builder.build(name)
            self._clients[name] = client
        return client

    def _index_definition(self, name: str) -> SearchIndex:
        fields: list[SearchField] = [
            SimpleField(name=FIELD_ID, type=SearchFieldDataType.String, key=True),
            SearchableField(name=FIELD_TEXT, type=SearchFieldDataType.String),
            SimpleField(name=FIELD_METADATA, type=SearchFieldDataType.String),
        ]
        vector_search = None
        if self._embeddings is not None:
            fields.append(
                SearchField(
                    name=FIELD_EMBEDDING,
                    type=SearchFieldDataType.Collection(SearchFieldDataType.Single),
                    searchable=True,
                    vector_search_dimensions=self._vector_size,
                    vector_search_profile_name=VECTOR_PROFILE_NAME,
                )
            )
            vector_search = VectorSearch(
                algorithms=[HnswAlgorithmConfiguration(name=HNSW_CONFIG_NAME)],
                profiles=[
                    VectorSearchProfile(
                        name=VECTOR_PROFILE_NAME,
                        algorithm_configuration_name=HNSW_CONFIG_NAME,
                    )
                ],
            )
        return SearchIndex(name=name, fields=fields, vector_search=vector_search)

    async def _ensure_index(self, name: str) -> None:
        if name in self._ready_indexes:
            return
        if self._index_client is None:
            self._index_client = self._builder.build_index_client()
        await self._index_client.create_or_update_index(self._index_definition(name))
        self._ready_indexes.add(name)
        logger.info("Azure Search memory index ready", index_name=name)

    async def _embed(self, text: str, index_name: str) -> list[float]:
        if self._embeddings is None:
            raise MemoryStoreError(
                STORE_NAME, "embed", "no embedding generator configured", index_name
            )
        try:
            return await self._embeddings.embed(text)
        except Exception as exc:
            # Embedding failures (throttling, OpenAI errors) count as store failures.
            raise MemoryStoreError(STORE_NAME, "embed", str(exc), index_name) from exc

    @staticmethod
    def _to_record(doc: Mapping[str, Any], relevance: float | None = None) -> MemoryRecord:
        raw_meta = doc.get(FIELD_METADATA) or "{}"
        try:
            metadata = {str(k): str(v) for k, v in json.loads(raw_meta).items()}
        except (TypeError, ValueError, AttributeError):
            metadata = {}
        return MemoryRecord(
            id=decode_key(str(doc.get(FIELD_ID, ""))),
            text=str(doc.get(FIELD_TEXT) or ""),
            metadata=metadata,
            relevance=relevance,
        )

    # ------------------------------ Public API -------------------------------

    async def get(self, index_name: str, key: str) -> Optional[MemoryRecord]:
        name = normalize_index_name(index_name)
        try:
            doc = await self._client(name).get_document(key=encode_key(key))
        except ResourceNotFoundError:
            return None
        except AzureError as exc:
            raise MemoryStoreError(STORE_NAME, "get", str(exc), index_name) from exc
        return self._to_record(doc)

    async def put(
        self,
        index_name: str,
        key: str,
        text: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        name = normalize_index_name(index_name)
        doc: dict[str, Any] = {
            FIELD_ID: encode_key(key),
            FIELD_TEXT: text,
            FIELD_METADATA: json.dumps(dict(metadata or {}), sort_keys=True),
        }
        if self._embeddings is not None:
            doc[FIELD_EMBEDDING] = await self._embed(text, index_name)
        try:
            await self._ensure_index(name)
            results = await self._client(name).merge_or_upload_documents(documents=[doc])
        except AzureError as exc:
            raise MemoryStoreError(STORE_NAME, "put", str(exc), index_name) from exc

        for result in results or []:
            if not getattr(result, "succeeded", True):
                raise MemoryStoreError(
                    STORE_NAME,
                    "put",
                    str(getattr(result, "error_message", "") or "indexing rejected"),
                    index_name,
                )
        logger.debug("Azure Search memory stored", index_name=name, key=key)

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
        name = normalize_index_name(index_name)

        params: dict[str, Any] = {}
        if limit is not None:
            params["top"] = limit
        if query.strip() == MATCH_ALL_QUERY or self._embeddings is None:
            params["search_text"] = query
        else:
            vector = await self._embed(query, index_name)
            params["search_text"] = None
            params["vector_queries"] = [
                VectorizedQuery(
                    vector=vector,
                    k_nearest_neighbors=limit or 50,
                    fields=FIELD_EMBEDDING,
                )
            ]

        try:
            # No `top` means the SDK pages through every match lazily.
            results = await self._client(name).search(**params)
            async for row in results:
                score = float(row.get(SCORE_FIELD) or 0.0)
                if score < min_score:
                    continue
                yield self._to_record(row, relevance=score)
        except ResourceNotFoundError:
            logger.debug("Azure Search index missing; nothing to search", index_name=name)
            return
        except AzureError as exc:
            raise MemoryStoreError(STORE_NAME, "search", str(exc), index_name) from exc

    async def close(self) -> None:
        """Close every per-index client, the index client and embeddings."""

        async def _aclose(x: Any) -> None:
            if not x:
                return
            close_fn = getattr(x, "close", None)
            if close_fn:
                res = close_fn()
                if inspect.isawaitable(res):
                    await res

        for client in self._clients.values():
            await _aclose(client)
        self._clients.clear()
        await _aclose(self._index_client)
        await _aclose(self._embeddings)
