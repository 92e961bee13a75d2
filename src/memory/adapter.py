"""Memory Store Adapter: the boundary between chat turns and the memory service.

The adapter is stateless with respect to users; every call names its user.
Reads degrade to empty results and exchange writes are best-effort, so no
memory-service failure escapes this module except from ``clear_all``.
"""

import logging
from datetime import timedelta
from typing import Any

from ..core.config import Settings, settings as default_settings
from ..core.domain.chat import Message, utc_now
from ..core.domain.memory import CategorizedMemories, MemoryRecord, MemoryStats
from ..core.errors import MemoryServiceError
from .base import MemoryBackend
from .categorizer import categorize_all

logger = logging.getLogger(__name__)

SOURCE_TAG = "chat_session"


def build_transcript(messages: list[Message]) -> str:
    """Flatten messages into role-prefixed lines, one per text part."""
    lines: list[str] = []
    for message in messages:
        text_parts = message.text_parts
        if text_parts:
            lines.extend(f"{message.role}: {text}" for text in text_parts)
        else:
            lines.append(f"{message.role}: {message.content}")
    return "\n".join(lines)


class MemoryStoreAdapter:
    """Stores, retrieves, categorizes and prunes a user's long-term memories."""

    def __init__(self, backend: MemoryBackend, config: Settings | None = None):
        """Initialize the adapter.

        Args:
            backend: Memory service client
            config: Settings providing thresholds, defaults to global settings
        """
        self.backend = backend
        self.config = config or default_settings

    async def close(self) -> None:
        await self.backend.close()

    def should_store(self, messages: list[Message]) -> bool:
        """Whether the exchange's transcript is long enough to be worth storing."""
        return len(build_transcript(messages)) > self.config.memory_min_transcript_chars

    async def store_exchange(
        self,
        user_id: str,
        messages: list[Message],
        conversation_id: str | None = None,
    ) -> bool:
        """Submit an exchange for memory extraction.

        Transcripts not longer than the configured floor are skipped. Failures
        are logged and swallowed.

        Returns:
            True if the exchange reached the memory service
        """
        transcript = build_transcript(messages)
        if not self.should_store(messages):
            logger.debug(
                f"Skipping memory store for user {user_id}: "
                f"transcript of {len(transcript)} characters is too short"
            )
            return False

        metadata: dict[str, Any] = {
            "conversation_id": conversation_id,
            "timestamp": utc_now().isoformat(),
            "message_count": len(messages),
            "source": SOURCE_TAG,
        }

        try:
            await self.backend.add(
                [{"role": "user", "content": transcript}],
                user_id=user_id,
                metadata=metadata,
            )
        except Exception as e:
            logger.error(f"Error storing memory for user {user_id}: {str(e)}")
            return False

        logger.info(f"Memory stored for user {user_id}: {len(transcript)} characters")
        return True

    async def retrieve_relevant(self, user_id: str, query: str, limit: int = 5) -> list[str]:
        """Memory texts most relevant to ``query``, or [] on failure."""
        try:
            records = await self.backend.search(query, user_id=user_id, limit=limit)
        except Exception as e:
            logger.error(f"Error retrieving memories for user {user_id}: {str(e)}")
            return []

        memories = [record.memory for record in records if record.memory][:limit]
        logger.debug(f"Retrieved {len(memories)} relevant memories for user {user_id}")
        return memories

    async def _list_records(self, user_id: str) -> list[MemoryRecord]:
        try:
            return await self.backend.get_all(user_id)
        except Exception as e:
            logger.error(f"Error getting all memories for user {user_id}: {str(e)}")
            return []

    async def retrieve_all(self, user_id: str) -> CategorizedMemories:
        """Every memory for the user, bucketed by heuristic category."""
        records = await self._list_records(user_id)
        categorized = categorize_all([record.memory for record in records if record.memory])
        logger.debug(
            f"Retrieved all memories for user {user_id}: {len(categorized.facts)} facts, "
            f"{len(categorized.preferences)} preferences, {len(categorized.context)} context"
        )
        return categorized

    async def _delete_matching(self, user_id: str, days: int, strict: bool) -> int:
        try:
            records = await self.backend.get_all(user_id)
        except MemoryServiceError:
            if strict:
                raise
            logger.error(f"Error listing memories for cleanup of user {user_id}")
            return 0

        cutoff = utc_now() - timedelta(days=days)
        deleted = 0
        failures: list[str] = []

        for record in records:
            if days != 0:
                timestamp = record.metadata_timestamp
                if timestamp is None or timestamp >= cutoff:
                    continue
            try:
                await self.backend.delete(record.id)
                deleted += 1
            except MemoryServiceError as e:
                logger.error(f"Error deleting memory {record.id}: {str(e)}")
                failures.append(record.id)

        logger.info(f"Cleaned up {deleted} memories for user {user_id}")

        if strict and failures:
            raise MemoryServiceError(
                f"Failed to delete {len(failures)} memories",
                {"failed_ids": failures, "deleted": deleted},
            )
        return deleted

    async def delete_older_than(self, user_id: str, days: int) -> int:
        """Delete memories older than ``days`` days; ``days == 0`` wipes all.

        Per-entry failures are logged and skipped.

        Returns:
            Number of entries actually deleted
        """
        return await self._delete_matching(user_id, days, strict=False)

    async def clear_all(self, user_id: str) -> int:
        """User-initiated wipe of every memory.

        Raises:
            MemoryServiceError: If listing fails or any entry could not be deleted
        """
        return await self._delete_matching(user_id, 0, strict=True)

    async def compute_stats(self, user_id: str) -> MemoryStats:
        """Totals per category plus the newest metadata timestamp."""
        records = await self._list_records(user_id)
        categorized = categorize_all([record.memory for record in records if record.memory])

        timestamps = [
            record.metadata_timestamp for record in records
            if record.metadata_timestamp is not None
        ]

        return MemoryStats(
            total=len(records),
            facts=len(categorized.facts),
            preferences=len(categorized.preferences),
            context=len(categorized.context),
            last_updated=max(timestamps) if timestamps else None,
        )
