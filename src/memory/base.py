"""Abstraction over the external long-term memory service."""

from abc import ABC, abstractmethod
from typing import Any

from ..core.domain.memory import MemoryRecord


class MemoryBackend(ABC):
    """Base class for long-term memory service clients.

    Implementations raise ``MemoryServiceError`` on any failure; swallowing
    errors is the adapter's job, not the client's.
    """

    @abstractmethod
    async def add(
        self,
        messages: list[dict[str, str]],
        user_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Submit content for memory extraction.

        Args:
            messages: Role-tagged messages to extract memories from
            user_id: User the memories belong to
            metadata: Metadata attached to every extracted entry
        """
        pass

    @abstractmethod
    async def search(self, query: str, user_id: str, limit: int = 5) -> list[MemoryRecord]:
        """Semantic search over a user's memories, most relevant first."""
        pass

    @abstractmethod
    async def get_all(self, user_id: str) -> list[MemoryRecord]:
        """Every memory entry held for the user."""
        pass

    @abstractmethod
    async def delete(self, memory_id: str) -> None:
        """Delete a single memory entry."""
        pass

    async def __aenter__(self) -> "MemoryBackend":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Release client resources."""
        pass
