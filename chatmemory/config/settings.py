"""Application settings for chat memory storage and migration.

`ChatMemorySettings` is the single source of truth for configuration. It is a
`pydantic-settings` model read from environment variables prefixed with
`CHATMEMORY_` (nested fields separated by `__`) and from an optional `.env`
file, e.g.:

    CHATMEMORY_MEMORY_STORE__TYPE=azure_search
    CHATMEMORY_MEMORY_STORE__AZURE_SEARCH__ENDPOINT=https://svc.search.windows.net
    CHATMEMORY_MEMORY_STORE__AZURE_SEARCH__KEY=...
    CHATMEMORY_MIGRATION__CLAIM_WINDOW_SECONDS=5

Secrets are held as `SecretStr` and unwrapped only by the client builders.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatmemory.common.enums import ChatStoreType, MemoryStoreType

DEFAULT_MEMORY_INDEX_NAME = "chatmemory"
DEFAULT_CLAIM_WINDOW_SECONDS = 5.0
DEFAULT_OPENAI_API_VERSION = "2024-02-01"
DEFAULT_VECTOR_SIZE = 1536
DEFAULT_CHROMA_PORT = 8000

LONG_TERM_MEMORY_PROMPT = (
    "Extract information that is encoded and consolidated from other memory "
    "types, such as working memory or sensory memory. It should be useful for "
    "maintaining and recalling one's personal identity, history, and knowledge "
    "over time."
)
WORKING_MEMORY_PROMPT = (
    "Extract information for a short period of time, such as a few seconds or "
    "minutes. It should be useful for performing complex cognitive tasks that "
    "require attention, concentration, or mental calculation."
)
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class ConfigError(ValueError):
    """User-actionable configuration error."""

    pass


class AzureSearchStoreOptions(BaseModel):
    """Connection settings for the Azure AI Search memory store."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(..., description="Azure AI Search endpoint URL.")
    key: Optional[SecretStr] = Field(
        None, description="Admin key. When omitted, an AAD credential is used."
    )
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[SecretStr] = None
    managed_identity_client_id: Optional[str] = None

    # Optional embeddings for vector search; plain text search is used without them.
    openai_endpoint: Optional[str] = None
    openai_key: Optional[SecretStr] = None
    openai_version: str = DEFAULT_OPENAI_API_VERSION
    embedding_deployment_name: Optional[str] = None
    vector_size: int = Field(DEFAULT_VECTOR_SIZE, gt=0)

    @property
    def embeddings_enabled(self) -> bool:
        return bool(self.openai_endpoint and self.embedding_deployment_name)


class ChromaStoreOptions(BaseModel):
    """Either a local persistent path or a remote host/port."""

    model_config = ConfigDict(frozen=True)

    path: Optional[str] = Field(None, description="Directory of a persistent client.")
    host: Optional[str] = Field(None, description="Host of a Chroma server.")
    port: int = Field(DEFAULT_CHROMA_PORT, gt=0, le=65535)


class MemoryStoreOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: MemoryStoreType = MemoryStoreType.VOLATILE
    azure_search: Optional[AzureSearchStoreOptions] = None
    chroma: Optional[ChromaStoreOptions] = None


class ChatStoreOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ChatStoreType = ChatStoreType.VOLATILE
    file_path: Optional[str] = Field(
        None,
        description="Directory holding the JSON files of the filesystem chat store.",
    )


class PromptsOptions(BaseModel):
    """Memory types and the name of the consolidated memory index.

    `memory_map` is ordered: its keys are the memory type labels, in the order
    legacy indexes are visited during migration.
    """

    model_config = ConfigDict(frozen=True)

    memory_index_name: str = Field(DEFAULT_MEMORY_INDEX_NAME, min_length=1)
    memory_map: dict[str, str] = Field(
        default_factory=lambda: {
            "LongTermMemory": LONG_TERM_MEMORY_PROMPT,
            "WorkingMemory": WORKING_MEMORY_PROMPT,
        }
    )

    @property
    def memory_types(self) -> list[str]:
        return list(self.memory_map.keys())


class MigrationOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    claim_window_seconds: float = Field(
        DEFAULT_CLAIM_WINDOW_SECONDS,
        ge=0,
        description="Delay between writing a claim token and re-reading it.",
    )
    copy_attempts: int = Field(
        1,
        ge=1,
        description="How many times the whole copy phase is run before giving up.",
    )


class LoggingOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    json_logs: bool = False

    @field_validator("level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level {v!r}")
        return level


class ChatMemorySettings(BaseSettings):
    """Root settings object, loaded from `CHATMEMORY_*` variables and `.env`."""

    model_config = SettingsConfigDict(
        env_prefix="CHATMEMORY_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    memory_store: MemoryStoreOptions = Field(default_factory=MemoryStoreOptions)
    chat_store: ChatStoreOptions = Field(default_factory=ChatStoreOptions)
    prompts: PromptsOptions = Field(default_factory=PromptsOptions)
    migration: MigrationOptions = Field(default_factory=MigrationOptions)
    logging: LoggingOptions = Field(default_factory=LoggingOptions)
