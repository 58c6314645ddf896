from .claim import BestEffortLeaderClaim  # noqa: F401
from .errors import (  # noqa: F401
    MigrationCancelledError,
    MigrationError,
    MigrationFailedError,
    MigrationPhase,
)
from .factory import MigrationRuntime, build_migration_runtime  # noqa: F401
from .monitor import ChatMigrationMonitor  # noqa: F401
from .service import (  # noqa: F401
    MIGRATION_COMPLETION_TOKEN,
    MIGRATION_KEY,
    ChatMemoryMigrationService,
    MigrationResult,
    run_migration,
    start_background_migration,
)

# The Typer app (`.cli`) is imported by the CLI entry point only.

__all__ = [
    "BestEffortLeaderClaim",
    "ChatMemoryMigrationService",
    "ChatMigrationMonitor",
    "MIGRATION_COMPLETION_TOKEN",
    "MIGRATION_KEY",
    "MigrationCancelledError",
    "MigrationError",
    "MigrationFailedError",
    "MigrationPhase",
    "MigrationResult",
    "MigrationRuntime",
    "build_migration_runtime",
    "run_migration",
    "start_background_migration",
]
