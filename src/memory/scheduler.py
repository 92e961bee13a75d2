"""Detached scheduling of memory commits after a completed turn.

``schedule`` returns immediately. In-process mode runs the commit as a
background asyncio task; queue mode hands it to the reflector worker through
RabbitMQ.
"""

import asyncio
import logging
from typing import Optional

from ..core.config import Settings, settings as default_settings
from ..core.domain.chat import Message
from ..reflector.queue.producer import QueueProducer
from ..reflector.queue.schemas import MemoryCommitJob
from .adapter import MemoryStoreAdapter

logger = logging.getLogger(__name__)


class MemoryCommitScheduler:
    """Fire-and-forget submission of exchanges to long-term memory."""

    def __init__(
        self,
        adapter: Optional[MemoryStoreAdapter],
        producer: Optional[QueueProducer] = None,
        config: Optional[Settings] = None,
    ):
        """Initialize the scheduler.

        Args:
            adapter: Memory Store Adapter used in-process; None disables commits
            producer: Queue producer; when given, jobs go to the reflector worker
            config: Settings providing retry limits
        """
        self.adapter = adapter
        self.producer = producer
        self.config = config or default_settings
        self._tasks: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.adapter is not None or self.producer is not None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(
        self,
        user_id: str,
        messages: list[Message],
        conversation_id: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        """Submit an exchange for memory commit without waiting for it.

        Returns:
            The background task, or None when memory is disabled
        """
        if not self.enabled:
            return None

        if self.producer is not None:
            if self.adapter is not None and not self.adapter.should_store(messages):
                return None
            job = MemoryCommitJob.from_exchange(
                user_id,
                messages,
                conversation_id,
                max_retries=self.config.reflection_max_retries,
            )
            coro = self._publish(job)
        else:
            coro = self._commit(user_id, messages, conversation_id)

        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _commit(
        self,
        user_id: str,
        messages: list[Message],
        conversation_id: Optional[str],
    ) -> None:
        try:
            await self.adapter.store_exchange(user_id, messages, conversation_id)
        except Exception as e:
            logger.error(f"Background memory commit failed for user {user_id}: {e}")

    async def _publish(self, job: MemoryCommitJob) -> None:
        if not await self.producer.publish_job(job):
            logger.error(f"Memory commit job {job.job_id} could not be queued")

    async def drain(self) -> None:
        """Wait for every pending background commit to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self.producer is not None:
            await self.producer.disconnect()
