# chatmemory/services/memory/__init__.py

from .client import ConsolidatedMemoryClient, consolidated_memory_key  # noqa: F401
from .errors import MemoryIndexError, MemoryStoreError  # noqa: F401
from .models import MATCH_ALL_QUERY, NO_MIN_SCORE, MemoryRecord  # noqa: F401
from .store import MemoryStore, VolatileMemoryStore  # noqa: F401

# Back-end modules (azure_search_store, chroma_store) pull their SDKs and are
# imported on demand through `registry.build_memory_store`.

__all__ = [
    "ConsolidatedMemoryClient",
    "MATCH_ALL_QUERY",
    "MemoryIndexError",
    "MemoryRecord",
    "MemoryStore",
    "MemoryStoreError",
    "NO_MIN_SCORE",
    "VolatileMemoryStore",
    "consolidated_memory_key",
]
