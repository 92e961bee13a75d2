"""Memory-related domain models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class MemoryCategory(str, Enum):
    """Read-time classification of a memory entry (lexical heuristic)."""

    FACT = "fact"
    PREFERENCE = "preference"
    CONTEXT = "context"


class MemoryRecord(BaseModel):
    """One entry held by the external memory service, scoped to a user."""

    id: str = Field(..., description="Identifier assigned by the memory service")
    memory: str = Field(..., description="The memory content")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Entry metadata (conversation_id, timestamp, source, ...)",
    )
    created_at: datetime | None = Field(
        None,
        description="Creation time reported by the memory service",
    )

    @property
    def metadata_timestamp(self) -> datetime | None:
        """Timestamp recorded in metadata when the entry was committed."""
        raw = self.metadata.get("timestamp")
        if not raw:
            return None
        try:
            parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


class CategorizedMemories(BaseModel):
    """All of a user's memories split into heuristic buckets."""

    facts: list[str] = Field(default_factory=list)
    preferences: list[str] = Field(default_factory=list)
    context: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.facts) + len(self.preferences) + len(self.context)

    def bucket(self, category: MemoryCategory) -> list[str]:
        if category == MemoryCategory.FACT:
            return self.facts
        if category == MemoryCategory.PREFERENCE:
            return self.preferences
        return self.context


class MemoryStats(BaseModel):
    """Aggregate view over a user's memories."""

    total: int = 0
    facts: int = 0
    preferences: int = 0
    context: int = 0
    last_updated: datetime | None = None
