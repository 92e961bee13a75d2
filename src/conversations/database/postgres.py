"""PostgreSQL database connection and utilities for conversation storage."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from ...core.config import settings

logger = logging.getLogger(__name__)


class PostgresConnection:
    """Async PostgreSQL connection manager for conversation storage."""

    def __init__(self, dsn: str | None = None):
        """Initialize connection manager.

        Args:
            dsn: Connection URL, defaults to the configured PostgreSQL URL
        """
        self.dsn = dsn or settings.postgres_url
        self.pool: asyncpg.Pool | None = None

    async def __aenter__(self) -> "PostgresConnection":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.disconnect()

    async def connect(self) -> None:
        """Establish connection pool to PostgreSQL."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30,
                server_settings={
                    # Disable JIT for better performance with short queries
                    "jit": "off"
                }
            )

            async with self.pool.acquire() as conn:
                await conn.execute("SELECT 1")

            logger.info("Connected to PostgreSQL for conversation storage")

        except Exception as e:
            logger.error(f"Failed to connect to PostgreSQL: {str(e)}")
            raise

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Disconnected from PostgreSQL")

    async def initialize_schema(self) -> None:
        """Initialize database schema for conversations."""
        if not self.pool:
            raise RuntimeError("Connection pool not initialized")

        # Messages live in one JSONB array so each mutation is a single row write
        create_conversations = """
        CREATE TABLE IF NOT EXISTS conversations (
            id TEXT PRIMARY KEY,
            owner_id VARCHAR(200) NOT NULL,
            title TEXT NOT NULL DEFAULT 'New Chat',
            messages JSONB NOT NULL DEFAULT '[]',
            is_shared BOOLEAN NOT NULL DEFAULT FALSE,
            share_token TEXT UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            last_message_at TIMESTAMPTZ
        );
        """

        create_indexes = """
        CREATE INDEX IF NOT EXISTS idx_conversations_owner_id ON conversations(owner_id);
        CREATE INDEX IF NOT EXISTS idx_conversations_owner_activity
            ON conversations(owner_id, last_message_at DESC NULLS LAST, updated_at DESC);
        """

        async with self.pool.acquire() as conn:
            try:
                await conn.execute(create_conversations)
                await conn.execute(create_indexes)
                logger.info("Conversation schema initialized")
            except Exception as e:
                logger.error(f"Failed to initialize schema: {e}")
                raise

    async def execute_query(
        self,
        query: str,
        *args: Any,
        fetch: bool = False
    ) -> list[asyncpg.Record] | None:
        """Execute a query with connection pool.

        Args:
            query: SQL query to execute
            *args: Query parameters
            fetch: Whether to fetch results

        Returns:
            Query results if fetch=True, None otherwise
        """
        if not self.pool:
            raise RuntimeError("Connection pool not initialized")

        async with self.pool.acquire() as conn:
            if fetch:
                return await conn.fetch(query, *args)
            else:
                await conn.execute(query, *args)
                return None

    async def fetch_row(self, query: str, *args: Any) -> asyncpg.Record | None:
        """Fetch a single row."""
        if not self.pool:
            raise RuntimeError("Connection pool not initialized")

        async with self.pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a connection with an open transaction."""
        if not self.pool:
            raise RuntimeError("Connection pool not initialized")

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn


# Global connection instance
_postgres_connection: PostgresConnection | None = None


async def get_postgres_connection() -> PostgresConnection:
    """Get global PostgreSQL connection instance."""
    global _postgres_connection

    if _postgres_connection is None:
        _postgres_connection = PostgresConnection()
        await _postgres_connection.connect()

    return _postgres_connection
