"""Select and build the configured memory store back-end.

Back-ends are registered under explicit identifiers (the `MemoryStoreType`
values). Each builder imports its SDK lazily, so only the selected back-end's
dependencies have to be installed.
"""

from __future__ import annotations

from typing import Callable

from chatmemory.common.enums import MemoryStoreType
from chatmemory.config.settings import ConfigError, MemoryStoreOptions
from chatmemory.core.structured_logging import get_logger
from chatmemory.services.memory.store import MemoryStore, VolatileMemoryStore

logger = get_logger(__name__)

MemoryStoreBuilder = Callable[[MemoryStoreOptions], MemoryStore]


def _build_volatile(options: MemoryStoreOptions) -> MemoryStore:
    return VolatileMemoryStore()


def _build_azure_search(options: MemoryStoreOptions) -> MemoryStore:
    if options.azure_search is None:
        raise ConfigError(
            "Memory store type is 'azure_search' but no azure_search configuration "
            "was provided."
        )
    from chatmemory.services.memory.azure_search_store import AzureSearchMemoryStore

    return AzureSearchMemoryStore.from_options(options.azure_search)


def _build_chroma(options: MemoryStoreOptions) -> MemoryStore:
    if options.chroma is None:
        raise ConfigError(
            "Memory store type is 'chroma' but no chroma configuration was provided."
        )
    from chatmemory.services.memory.chroma_store import ChromaMemoryStore

    return ChromaMemoryStore.from_options(options.chroma)


MEMORY_STORE_BUILDERS: dict[str, MemoryStoreBuilder] = {
    MemoryStoreType.VOLATILE.value: _build_volatile,
    MemoryStoreType.AZURE_SEARCH.value: _build_azure_search,
    MemoryStoreType.CHROMA.value: _build_chroma,
}


def build_memory_store(options: MemoryStoreOptions) -> MemoryStore:
    """Build the memory store selected by `options.type`.

    Raises:
        ConfigError: If the type is unknown or its configuration is missing.
    """
    key = MemoryStoreType(options.type).value
    builder = MEMORY_STORE_BUILDERS.get(key)
    if builder is None:
        raise ConfigError(f"Invalid memory store type {key!r}.")
    logger.info("Building memory store", store_type=key)
    return builder(options)
