"""Durable conversation storage backends."""

from ...core.config import Settings, settings as default_settings
from ..database.postgres import PostgresConnection
from .base import MessageStore
from .in_memory import InMemoryMessageStore
from .postgres import PostgresMessageStore


def create_message_store(config: Settings | None = None) -> MessageStore:
    """Build the message store selected by configuration."""
    config = config or default_settings
    if config.message_store_backend == "memory":
        return InMemoryMessageStore()
    return PostgresMessageStore(PostgresConnection(config.postgres_url))


__all__ = [
    "InMemoryMessageStore",
    "MessageStore",
    "PostgresMessageStore",
    "create_message_store",
]
