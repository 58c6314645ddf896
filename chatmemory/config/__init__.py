from chatmemory.config.settings import (  # noqa: F401
    AzureSearchStoreOptions,
    ChatMemorySettings,
    ChatStoreOptions,
    ChromaStoreOptions,
    ConfigError,
    LoggingOptions,
    MemoryStoreOptions,
    MigrationOptions,
    PromptsOptions,
)

__all__ = [
    "AzureSearchStoreOptions",
    "ChatMemorySettings",
    "ChatStoreOptions",
    "ChromaStoreOptions",
    "ConfigError",
    "LoggingOptions",
    "MemoryStoreOptions",
    "MigrationOptions",
    "PromptsOptions",
]
