"""RabbitMQ producer for memory commit jobs."""

import logging
from typing import Optional
import aio_pika
from aio_pika import Message, DeliveryMode

from ...core.config import Settings, settings as default_settings
from ...core.domain.chat import utc_now
from .schemas import MemoryCommitJob

logger = logging.getLogger(__name__)


async def declare_topology(channel: aio_pika.abc.AbstractChannel, config: Settings):
    """Declare the commit exchange, its durable queue and the dead letter route.

    Returns:
        The main exchange and the main queue
    """
    exchange = await channel.declare_exchange(
        config.rabbitmq_exchange,
        aio_pika.ExchangeType.TOPIC,
        durable=True
    )

    queue = await channel.declare_queue(
        config.rabbitmq_queue,
        durable=True,
        arguments={
            "x-dead-letter-exchange": f"{config.rabbitmq_exchange}.dlx",
            "x-dead-letter-routing-key": "failed",
        }
    )
    await queue.bind(exchange, "memory.*")

    dlx_exchange = await channel.declare_exchange(
        f"{config.rabbitmq_exchange}.dlx",
        aio_pika.ExchangeType.TOPIC,
        durable=True
    )
    dlx_queue = await channel.declare_queue(
        config.rabbitmq_dead_letter_queue,
        durable=True
    )
    await dlx_queue.bind(dlx_exchange, "failed")

    return exchange, queue


def build_message(job: MemoryCommitJob) -> Message:
    """Persistent AMQP message carrying a commit job."""
    return Message(
        job.to_json().encode(),
        delivery_mode=DeliveryMode.PERSISTENT,
        timestamp=utc_now(),
        message_id=job.job_id,
        content_type="application/json",
        headers={
            "user_id": job.user_id,
            "retry_count": job.retry_count,
            "max_retries": job.max_retries,
        }
    )


def routing_key_for(job: MemoryCommitJob) -> str:
    return f"memory.{job.user_id}"


class QueueProducer:
    """RabbitMQ producer for memory commit jobs."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self.channel: Optional[aio_pika.abc.AbstractChannel] = None
        self.exchange: Optional[aio_pika.abc.AbstractExchange] = None
        self._is_connected = False

    async def connect(self) -> None:
        """Open the connection and declare the queue topology."""
        try:
            self.connection = await aio_pika.connect_robust(
                self.config.rabbitmq_url,
                client_properties={"connection_name": "chat_memory_producer"}
            )
            self.channel = await self.connection.channel()
            self.exchange, _ = await declare_topology(self.channel, self.config)

            self._is_connected = True
            logger.info("RabbitMQ producer connected and configured")

        except Exception as e:
            logger.error(f"Failed to connect to RabbitMQ: {e}")
            raise

    async def disconnect(self) -> None:
        """Close RabbitMQ connection."""
        if self.connection:
            await self.connection.close()
            self._is_connected = False
            logger.info("RabbitMQ producer disconnected")

    async def publish_job(self, job: MemoryCommitJob) -> bool:
        """Publish a commit job; returns False instead of raising on failure."""
        try:
            if not self._is_connected:
                await self.connect()

            await self.exchange.publish(build_message(job), routing_key=routing_key_for(job))

            logger.debug(f"Queued memory commit job {job.job_id} for user {job.user_id}")
            return True

        except Exception as e:
            logger.error(f"Failed to send memory commit job {job.job_id}: {e}")
            return False

    async def health_check(self) -> dict:
        """Check producer connection status."""
        if not self._is_connected:
            return {"status": "disconnected", "healthy": False}

        if self.connection and not self.connection.is_closed:
            return {"status": "connected", "healthy": True}
        return {"status": "connection_closed", "healthy": False}
