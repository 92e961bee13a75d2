"""Memory Reflector Service - worker that commits queued exchanges to long-term memory."""

import asyncio
import logging
import signal
import sys
from typing import Any, Dict, Optional

from ..core.config import Settings, settings as default_settings
from ..memory.adapter import MemoryStoreAdapter
from ..memory.clients.mem0 import Mem0Client
from .queue.consumer import QueueConsumer
from .queue.schemas import MemoryCommitJob

logger = logging.getLogger(__name__)


class MemoryReflectorService:
    """Consumes memory commit jobs and hands them to the Memory Store Adapter."""

    def __init__(
        self,
        adapter: Optional[MemoryStoreAdapter] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.adapter = adapter
        self.consumer: Optional[QueueConsumer] = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    async def initialize(self) -> None:
        """Build the memory adapter and start consuming."""
        logger.info("Starting Memory Reflector Service initialization...")

        try:
            if self.adapter is None:
                self.adapter = MemoryStoreAdapter(Mem0Client(config=self.config), self.config)

            self.consumer = QueueConsumer(self.process_job, self.config)
            await self.consumer.connect()
            await self.consumer.start_consuming()

            logger.info("Memory Reflector Service initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Memory Reflector Service: {e}")
            raise

    async def process_job(self, job: MemoryCommitJob) -> bool:
        """Commit one job's exchange; False asks the consumer to retry."""
        logger.debug(f"Processing memory commit job {job.job_id} for user {job.user_id}")
        messages = job.exchange()
        if not self.adapter.should_store(messages):
            return True
        return await self.adapter.store_exchange(job.user_id, messages, job.conversation_id)

    async def run(self) -> None:
        """Run until a shutdown is requested."""
        self._running = True
        logger.info("Memory Reflector Service is running...")

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("Service run cancelled")
        finally:
            self._running = False

    async def health_check(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "consumer": self.consumer.get_stats() if self.consumer else None,
        }

    async def shutdown(self) -> None:
        """Gracefully shutdown the reflector service."""
        logger.info("Shutting down Memory Reflector Service...")

        self._running = False
        self._shutdown_event.set()

        if self.consumer:
            await self.consumer.disconnect()
            self.consumer = None
            logger.info("Queue consumer disconnected")

        if self.adapter:
            await self.adapter.close()

        logger.info("Memory Reflector Service shutdown complete")


def setup_signal_handlers(service: MemoryReflectorService) -> None:
    """Setup signal handlers for graceful shutdown."""
    loop = asyncio.get_running_loop()

    def handle_shutdown_signal(signum: int) -> None:
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        service._shutdown_event.set()

    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, handle_shutdown_signal, signum)


async def main() -> int:
    """Main entry point for Memory Reflector Service."""
    logging.basicConfig(
        level=getattr(logging, default_settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    logger.info("Starting Memory Reflector Service...")

    service = MemoryReflectorService()
    try:
        await service.initialize()
        setup_signal_handlers(service)
        await service.run()

    except Exception as e:
        logger.error(f"Service failed: {e}")
        return 1
    finally:
        await service.shutdown()

    logger.info("Memory Reflector Service stopped")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
