"""Exception types raised by memory store back-ends.

Every back-end translates its SDK failures into `MemoryStoreError` (chaining
the original exception) so callers can treat "the store is unreachable or
rejected the request" uniformly, whichever back-end is configured.
"""

from __future__ import annotations

from typing import Any


class MemoryStoreError(Exception):
    """Base exception for memory store I/O failures."""

    def __init__(
        self,
        store: str,
        operation: str,
        detail: str = "",
        index_name: str | None = None,
    ) -> None:
        """Initializes the error with the failing store and operation.

        Args:
            store: Short name of the back-end (e.g. "azure_search").
            operation: The store operation that failed ("get", "put", "search").
            detail: A human-readable explanation of the error.
            index_name: The index being accessed, when known.
        """
        where = f" on index {index_name!r}" if index_name else ""
        super().__init__(f"[{store}] {operation} failed{where}: {detail}")
        self.store: str = store
        self.operation: str = operation
        self.detail: str = detail
        self.index_name: str | None = index_name

    def snapshot(self) -> dict[str, Any]:
        """Return the error context as structured logging fields."""
        return {
            "store": self.store,
            "operation": self.operation,
            "index_name": self.index_name,
            "detail": self.detail,
        }


class MemoryIndexError(MemoryStoreError):
    """Raised when an index name cannot be mapped onto the back-end's rules."""

    def __init__(self, store: str, index_name: str, detail: str = "") -> None:
        super().__init__(
            store=store,
            operation="normalize_index_name",
            detail=detail or "invalid index name",
            index_name=index_name,
        )
