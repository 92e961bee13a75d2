"""RabbitMQ consumer for memory commit jobs."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional
import aio_pika
from aio_pika.abc import AbstractIncomingMessage
from datetime import datetime

from ...core.config import Settings, settings as default_settings
from .producer import build_message, declare_topology, routing_key_for
from .schemas import MemoryCommitJob

logger = logging.getLogger(__name__)

JobProcessor = Callable[[MemoryCommitJob], Awaitable[bool]]


class QueueConsumer:
    """RabbitMQ consumer for memory commit jobs."""

    def __init__(self, processor_callback: JobProcessor, config: Optional[Settings] = None):
        self.processor_callback = processor_callback
        self.config = config or default_settings
        self.connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self.channel: Optional[aio_pika.abc.AbstractChannel] = None
        self.exchange: Optional[aio_pika.abc.AbstractExchange] = None
        self.queue: Optional[aio_pika.abc.AbstractQueue] = None
        self._is_consuming = False

        # Performance metrics
        self.processed_count = 0
        self.failed_count = 0
        self.start_time = datetime.now()

    async def connect(self) -> None:
        """Connect to RabbitMQ and setup consumer."""
        try:
            self.connection = await aio_pika.connect_robust(
                self.config.rabbitmq_url,
                client_properties={"connection_name": "chat_memory_reflector"}
            )
            self.channel = await self.connection.channel()

            # Process several jobs concurrently but limit prefetch
            await self.channel.set_qos(prefetch_count=self.config.reflection_workers * 2)

            self.exchange, self.queue = await declare_topology(self.channel, self.config)

            logger.info(f"RabbitMQ consumer connected to queue: {self.config.rabbitmq_queue}")

        except Exception as e:
            logger.error(f"Failed to connect consumer to RabbitMQ: {e}")
            raise

    async def start_consuming(self) -> None:
        """Start consuming messages from the queue."""
        if not self.connection:
            await self.connect()

        await self.queue.consume(self.process_message, consumer_tag="memory_reflector")

        self._is_consuming = True
        self.start_time = datetime.now()
        logger.info(
            f"Started consuming memory commit jobs with {self.config.reflection_workers} workers"
        )

    async def disconnect(self) -> None:
        """Stop consuming and close connection."""
        if self.connection:
            await self.connection.close()
        self._is_consuming = False

        runtime = datetime.now() - self.start_time
        logger.info(
            f"Stopped consuming. Processed: {self.processed_count}, "
            f"Failed: {self.failed_count}, Runtime: {runtime}"
        )

    async def process_message(self, message: AbstractIncomingMessage) -> None:
        """Process one commit job message."""
        start_time = datetime.now()

        async with message.process(requeue=False, ignore_processed=True):
            job = MemoryCommitJob.from_json(message.body.decode())

            logger.debug(
                f"Processing memory commit job {job.job_id} for user {job.user_id} "
                f"(attempt {job.retry_count + 1}/{job.max_retries + 1})"
            )

            success = await self.processor_callback(job)

            if success:
                self.processed_count += 1
                processing_time = (datetime.now() - start_time).total_seconds()
                logger.info(f"Completed memory commit job {job.job_id} in {processing_time:.2f}s")
            else:
                await self._handle_job_failure(message, job)

    async def _handle_job_failure(
        self,
        message: AbstractIncomingMessage,
        job: MemoryCommitJob,
    ) -> None:
        """Republish a failed job with exponential backoff, or dead-letter it."""
        self.failed_count += 1

        if not job.should_retry():
            logger.error(f"Job {job.job_id} exceeded max retries, sending to dead letter queue")
            await message.reject(requeue=False)
            return

        job.increment_retry()
        delay = self.config.reflection_retry_delay * (2 ** (job.retry_count - 1))

        logger.warning(
            f"Job {job.job_id} failed, retrying in {delay}s "
            f"(attempt {job.retry_count}/{job.max_retries})"
        )

        await asyncio.sleep(delay)
        await self.exchange.publish(build_message(job), routing_key=routing_key_for(job))

    def get_stats(self) -> dict:
        """Get consumer performance statistics."""
        runtime = datetime.now() - self.start_time
        return {
            "is_consuming": self._is_consuming,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "runtime_seconds": runtime.total_seconds()
        }
