"""Service wiring for the HTTP layer."""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from ...conversations.editor import EditRegenerateController
from ...conversations.orchestrator import ConversationOrchestrator
from ...conversations.store import MessageStore, create_message_store
from ...core.completions.base import CompletionProvider
from ...core.completions.provider_factory import get_completion_provider
from ...core.config import Settings, settings as default_settings
from ...memory.adapter import MemoryStoreAdapter
from ...memory.clients.mem0 import Mem0Client
from ...memory.context.enricher import PromptEnricher
from ...memory.scheduler import MemoryCommitScheduler
from ...reflector.queue.producer import QueueProducer
from .auth import TokenAuthProvider

logger = logging.getLogger(__name__)


@dataclass
class ChatServices:
    """Everything a request handler needs, built once per application."""

    store: MessageStore
    provider: CompletionProvider
    memory: Optional[MemoryStoreAdapter]
    enricher: PromptEnricher
    scheduler: MemoryCommitScheduler
    orchestrator: ConversationOrchestrator
    editor: EditRegenerateController
    auth: TokenAuthProvider

    async def startup(self) -> None:
        await self.store.connect()

    async def shutdown(self) -> None:
        await self.scheduler.close()
        if self.memory is not None:
            await self.memory.close()
        await self.provider.close()
        await self.store.disconnect()


def assemble_services(
    store: MessageStore,
    provider: CompletionProvider,
    memory: Optional[MemoryStoreAdapter],
    auth: TokenAuthProvider,
    config: Optional[Settings] = None,
    producer: Optional[QueueProducer] = None,
) -> ChatServices:
    """Wire the orchestrator and its collaborators together."""
    config = config or default_settings
    enricher = PromptEnricher(memory, config)
    scheduler = MemoryCommitScheduler(memory, producer=producer, config=config)
    orchestrator = ConversationOrchestrator(store, provider, enricher, scheduler, config)
    return ChatServices(
        store=store,
        provider=provider,
        memory=memory,
        enricher=enricher,
        scheduler=scheduler,
        orchestrator=orchestrator,
        editor=EditRegenerateController(store, orchestrator),
        auth=auth,
    )


def build_services(config: Optional[Settings] = None) -> ChatServices:
    """Build services from configuration."""
    config = config or default_settings

    memory = None
    if config.memory_enabled and config.mem0_api_key:
        memory = MemoryStoreAdapter(Mem0Client(config=config), config)
        logger.info("Long-term memory enabled (mem0)")
    else:
        logger.warning("Long-term memory disabled (MEMORY_ENABLED off or MEM0_API_KEY missing)")

    producer = None
    if memory is not None and config.memory_queue_enabled:
        producer = QueueProducer(config)
        logger.info(f"Memory commits go through RabbitMQ queue {config.rabbitmq_queue}")

    return assemble_services(
        store=create_message_store(config),
        provider=get_completion_provider(config=config),
        memory=memory,
        auth=TokenAuthProvider(config.secret_key, config.access_token_expire_minutes),
        config=config,
        producer=producer,
    )


def get_services(request: Request) -> ChatServices:
    return request.app.state.services
