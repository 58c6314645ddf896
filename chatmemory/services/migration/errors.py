"""Exception types for the consolidated memory migration.

Losing the claim race is not an error and never raises. What does raise:

- `MigrationFailedError`: a store or repository call failed after this
  instance won the claim. The completion token was not written, so the copy
  can be re-run in full.
- `MigrationCancelledError`: the caller's cancel event was set between steps.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class MigrationPhase(str, Enum):
    """Where in the run a failure happened."""

    PROBE = "probe"
    CLAIM = "claim"
    REMOVE_SOURCES = "remove_sources"
    COPY = "copy"
    FINALIZE = "finalize"


class MigrationError(Exception):
    """Base exception for all migration errors."""

    pass


class MigrationFailedError(MigrationError):
    """Raised when the migration aborts after the claim was won."""

    def __init__(
        self,
        phase: MigrationPhase,
        detail: str = "",
        snapshot: dict[str, Any] | None = None,
    ) -> None:
        """Initializes the error with the failing phase.

        Args:
            phase: The phase that failed.
            detail: A human-readable explanation of the error.
            snapshot: Relevant state at the time of the error (e.g. the
                number of memories copied so far).
        """
        super().__init__(f"Memory migration failed during {phase.value}: {detail}")
        self.phase: MigrationPhase = phase
        self.detail: str = detail
        self.snapshot: dict[str, Any] = snapshot or {}


class MigrationCancelledError(MigrationError):
    """Raised when cancellation is requested before the run finished."""

    def __init__(self, phase: MigrationPhase) -> None:
        super().__init__(f"Memory migration cancelled before {phase.value}")
        self.phase: MigrationPhase = phase
