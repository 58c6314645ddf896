from enum import Enum


class MemoryStoreType(str, Enum):
    VOLATILE = "volatile"
    AZURE_SEARCH = "azure_search"
    CHROMA = "chroma"


class ChatStoreType(str, Enum):
    VOLATILE = "volatile"
    FILESYSTEM = "filesystem"


class ChatMigrationStatus(str, Enum):
    """Migration state as observed through the sentinel record."""

    NONE = "none"
    REQUIRES_UPGRADE = "requires_upgrade"
    UPGRADING = "upgrading"


class MigrationOutcome(str, Enum):
    ALREADY_MIGRATED = "already_migrated"
    CLAIMED_ELSEWHERE = "claimed_elsewhere"
    LOST_RACE = "lost_race"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
