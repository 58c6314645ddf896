from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

MATCH_ALL_QUERY = "*"
NO_MIN_SCORE = -1.0


class MemoryRecord(BaseModel):
    """A text memory as returned by a memory store."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    metadata: dict[str, str] = Field(default_factory=dict)
    relevance: Optional[float] = Field(
        None, description="Search relevance; None for direct key lookups."
    )
