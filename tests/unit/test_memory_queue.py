"""Unit tests for queued memory commits: job schema, scheduler, consumer and reflector."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.domain.chat import Attachment, Message
from src.memory.adapter import MemoryStoreAdapter
from src.memory.scheduler import MemoryCommitScheduler
from src.reflector.main import MemoryReflectorService
from src.reflector.queue.consumer import QueueConsumer
from src.reflector.queue.producer import QueueProducer, build_message, routing_key_for
from src.reflector.queue.schemas import MemoryCommitJob
from tests.fakes import FakeMemoryBackend, make_settings

ATTACHMENT = Attachment(name="cat.png", url="https://cdn/cat.png", media_type="image/png")


def long_exchange() -> list[Message]:
    return [
        Message.from_user_input("Tell me about the Roman republic", attachments=[ATTACHMENT], message_id="u1"),
        Message(
            id="a1",
            role="assistant",
            content="The Roman republic lasted from 509 BC until Augustus became the first emperor in 27 BC.",
        ),
    ]


class TestMemoryCommitJob:
    """Test cases for MemoryCommitJob."""

    def test_json_round_trip_rebuilds_exchange(self) -> None:
        job = MemoryCommitJob.from_exchange("alice", long_exchange(), "c1", max_retries=5)

        restored = MemoryCommitJob.from_json(job.to_json())

        assert restored.job_id == job.job_id
        assert restored.created_at == job.created_at
        assert restored.max_retries == 5
        messages = restored.exchange()
        assert [m.id for m in messages] == ["u1", "a1"]
        assert messages[0].attachments == [ATTACHMENT]

    def test_retry_accounting(self) -> None:
        job = MemoryCommitJob.from_exchange("alice", long_exchange(), max_retries=1)

        assert job.should_retry()
        assert not job.increment_retry().should_retry()

    def test_message_is_routed_per_user(self) -> None:
        job = MemoryCommitJob.from_exchange("alice", long_exchange())

        message = build_message(job)

        assert routing_key_for(job) == "memory.alice"
        assert message.message_id == job.job_id
        assert message.headers["retry_count"] == 0


@pytest.mark.asyncio
class TestSchedulerQueueMode:
    """Test cases for MemoryCommitScheduler publishing through RabbitMQ."""

    def setup_method(self) -> None:
        settings = make_settings(reflection_max_retries=4)
        self.backend = FakeMemoryBackend()
        self.producer = AsyncMock(spec=QueueProducer)
        self.scheduler = MemoryCommitScheduler(
            MemoryStoreAdapter(self.backend, settings),
            producer=self.producer,
            config=settings,
        )

    async def test_exchange_is_published_not_stored(self) -> None:
        self.producer.publish_job.return_value = True

        self.scheduler.schedule("alice", long_exchange(), "c1")
        await self.scheduler.drain()

        job = self.producer.publish_job.call_args.args[0]
        assert job.user_id == "alice"
        assert job.conversation_id == "c1"
        assert job.max_retries == 4
        assert self.backend.added == []

    async def test_short_exchange_is_not_published(self) -> None:
        messages = [Message(role="user", content="hi"), Message(role="assistant", content="hello")]

        assert self.scheduler.schedule("alice", messages) is None
        self.producer.publish_job.assert_not_called()

    async def test_publish_failure_does_not_raise(self) -> None:
        self.producer.publish_job.return_value = False

        self.scheduler.schedule("alice", long_exchange())
        await self.scheduler.drain()

        assert self.scheduler.pending == 0

    async def test_close_disconnects_producer(self) -> None:
        await self.scheduler.close()

        self.producer.disconnect.assert_awaited_once()


def incoming(job: MemoryCommitJob) -> MagicMock:
    message = MagicMock()
    message.body = job.to_json().encode()
    message.reject = AsyncMock()
    return message


@pytest.mark.asyncio
class TestQueueConsumer:
    """Test cases for QueueConsumer job handling."""

    def setup_method(self) -> None:
        self.processor = AsyncMock(return_value=True)
        self.consumer = QueueConsumer(self.processor, make_settings(reflection_retry_delay=0))
        self.consumer.exchange = AsyncMock()

    async def test_successful_job(self) -> None:
        job = MemoryCommitJob.from_exchange("alice", long_exchange())

        await self.consumer.process_message(incoming(job))

        assert self.processor.call_args.args[0].job_id == job.job_id
        assert self.consumer.get_stats()["processed_count"] == 1

    async def test_failed_job_is_republished_with_retry_count(self) -> None:
        self.processor.return_value = False
        job = MemoryCommitJob.from_exchange("alice", long_exchange())

        await self.consumer.process_message(incoming(job))

        message = self.consumer.exchange.publish.call_args.args[0]
        assert MemoryCommitJob.from_json(message.body.decode()).retry_count == 1
        assert self.consumer.exchange.publish.call_args.kwargs["routing_key"] == "memory.alice"
        assert self.consumer.failed_count == 1

    async def test_exhausted_job_is_dead_lettered(self) -> None:
        self.processor.return_value = False
        job = MemoryCommitJob.from_exchange("alice", long_exchange(), max_retries=0)
        message = incoming(job)

        await self.consumer.process_message(message)

        message.reject.assert_awaited_once_with(requeue=False)
        self.consumer.exchange.publish.assert_not_called()


@pytest.mark.asyncio
class TestMemoryReflectorService:
    """Test cases for MemoryReflectorService.process_job."""

    def setup_method(self) -> None:
        settings = make_settings()
        self.backend = FakeMemoryBackend()
        self.service = MemoryReflectorService(MemoryStoreAdapter(self.backend, settings), settings)

    async def test_job_is_committed(self) -> None:
        job = MemoryCommitJob.from_exchange("alice", long_exchange(), "c1")

        assert await self.service.process_job(job) is True
        assert self.backend.added[0]["metadata"]["conversation_id"] == "c1"

    async def test_backend_failure_asks_for_retry(self) -> None:
        self.backend.fail = True
        job = MemoryCommitJob.from_exchange("alice", long_exchange())

        assert await self.service.process_job(job) is False

    async def test_short_exchange_is_acknowledged(self) -> None:
        messages = [Message(role="user", content="hi"), Message(role="assistant", content="hello")]
        job = MemoryCommitJob.from_exchange("alice", messages)

        assert await self.service.process_job(job) is True
        assert self.backend.added == []

    async def test_health_before_run(self) -> None:
        assert await self.service.health_check() == {"running": False, "consumer": None}
