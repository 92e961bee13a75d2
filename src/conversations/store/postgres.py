"""PostgreSQL-backed message store.

Each conversation is one row; its messages are a JSONB array. Mutations lock
the row (``SELECT ... FOR UPDATE``) inside a transaction so concurrent appends
to the same conversation serialize and the id-set dedup stays correct.
"""

import json
import logging
from typing import Any

import asyncpg

from ...core.domain.chat import (
    DEFAULT_TITLE,
    AppendResult,
    Conversation,
    ConversationSummary,
    Message,
    new_id,
    utc_now,
)
from ...core.errors import ConversationNotFound
from ..database.postgres import PostgresConnection, get_postgres_connection
from .base import (
    MessageStore,
    filter_new_messages,
    generate_share_token,
    last_message_time,
    replace_and_truncate,
    truncate_from,
)

logger = logging.getLogger(__name__)

_SUMMARY_COLUMNS = """
    id, title, is_shared, share_token, created_at, updated_at, last_message_at,
    jsonb_array_length(messages) AS message_count
"""


def _dump_messages(messages: list[Message]) -> str:
    return json.dumps([
        message.model_dump(mode="json", by_alias=True, exclude={"attachments"})
        for message in messages
    ])


def _load_messages(raw: Any) -> list[Message]:
    if raw is None:
        return []
    data = json.loads(raw) if isinstance(raw, str) else raw
    return [Message.model_validate(item) for item in data]


def _row_to_conversation(row: asyncpg.Record) -> Conversation:
    return Conversation(
        id=row["id"],
        title=row["title"],
        owner_id=row["owner_id"],
        messages=_load_messages(row["messages"]),
        is_shared=row["is_shared"],
        share_token=row["share_token"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        last_message_at=row["last_message_at"],
    )


class PostgresMessageStore(MessageStore):
    """Message store persisted in PostgreSQL via asyncpg."""

    def __init__(self, postgres: PostgresConnection | None = None):
        """Initialize the store.

        Args:
            postgres: Connection manager; the global connection is used if omitted
        """
        self.postgres = postgres

    async def connect(self) -> None:
        """Connect and make sure the schema exists."""
        try:
            if self.postgres is None:
                self.postgres = await get_postgres_connection()
            if self.postgres.pool is None:
                await self.postgres.connect()
            await self.postgres.initialize_schema()
            logger.info("Connected to PostgreSQL message store")
        except Exception as e:
            logger.error(f"Failed to connect message store: {str(e)}")
            raise

    async def disconnect(self) -> None:
        if self.postgres:
            await self.postgres.disconnect()

    def _require_connection(self) -> PostgresConnection:
        if not self.postgres:
            raise RuntimeError("Store not connected - use async context manager")
        return self.postgres

    async def _locked_row(
        self,
        conn: asyncpg.Connection,
        conversation_id: str,
        owner_id: str,
    ) -> asyncpg.Record:
        row = await conn.fetchrow(
            "SELECT * FROM conversations WHERE id = $1 FOR UPDATE",
            conversation_id,
        )
        if row is None or row["owner_id"] != owner_id:
            raise ConversationNotFound(conversation_id)
        return row

    async def create_conversation(
        self,
        owner_id: str,
        title: str | None = None,
    ) -> Conversation:
        postgres = self._require_connection()
        conversation = Conversation(id=new_id(), owner_id=owner_id, title=title or DEFAULT_TITLE)

        await postgres.execute_query(
            """
            INSERT INTO conversations (id, owner_id, title, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5)
            """,
            conversation.id,
            conversation.owner_id,
            conversation.title,
            conversation.created_at,
            conversation.updated_at,
        )
        logger.debug(f"Created conversation {conversation.id} for user {owner_id}")
        return conversation

    async def get_conversation(
        self,
        conversation_id: str,
        owner_id: str | None = None,
    ) -> Conversation:
        postgres = self._require_connection()
        row = await postgres.fetch_row(
            "SELECT * FROM conversations WHERE id = $1",
            conversation_id,
        )
        if row is None or (owner_id is not None and row["owner_id"] != owner_id):
            raise ConversationNotFound(conversation_id)
        return _row_to_conversation(row)

    async def get_shared_conversation(self, share_token: str) -> Conversation:
        postgres = self._require_connection()
        row = await postgres.fetch_row(
            "SELECT * FROM conversations WHERE share_token = $1 AND is_shared",
            share_token,
        )
        if row is None:
            raise ConversationNotFound(share_token)
        return _row_to_conversation(row)

    async def list_conversations(self, owner_id: str) -> list[ConversationSummary]:
        postgres = self._require_connection()
        rows = await postgres.execute_query(
            f"""
            SELECT {_SUMMARY_COLUMNS}
            FROM conversations
            WHERE owner_id = $1
            ORDER BY COALESCE(last_message_at, updated_at) DESC, updated_at DESC
            """,
            owner_id,
            fetch=True,
        )
        return [ConversationSummary(**dict(row)) for row in rows or []]

    async def append_messages(
        self,
        conversation_id: str,
        owner_id: str,
        messages: list[Message],
    ) -> AppendResult:
        postgres = self._require_connection()

        async with postgres.transaction() as conn:
            inserted = await conn.execute(
                """
                INSERT INTO conversations (id, owner_id, title)
                VALUES ($1, $2, $3)
                ON CONFLICT (id) DO NOTHING
                """,
                conversation_id,
                owner_id,
                DEFAULT_TITLE,
            )
            if inserted.endswith(" 1"):
                logger.info(f"Created conversation {conversation_id} on first append")

            row = await self._locked_row(conn, conversation_id, owner_id)
            existing = _load_messages(row["messages"])
            to_append, id_map = filter_new_messages(existing, messages)

            if to_append:
                row = await conn.fetchrow(
                    """
                    UPDATE conversations
                    SET messages = $2::jsonb, updated_at = $3, last_message_at = $4
                    WHERE id = $1
                    RETURNING *
                    """,
                    conversation_id,
                    _dump_messages(existing + to_append),
                    utc_now(),
                    to_append[-1].timestamp,
                )

            skipped = len(messages) - len(to_append)
            if skipped:
                logger.debug(f"Skipped {skipped} duplicate message(s) in {conversation_id}")

        return AppendResult(
            conversation=_row_to_conversation(row),
            appended=to_append,
            id_map=id_map,
        )

    async def set_title(self, conversation_id: str, owner_id: str, title: str) -> None:
        postgres = self._require_connection()
        row = await postgres.fetch_row(
            """
            UPDATE conversations SET title = $3, updated_at = $4
            WHERE id = $1 AND owner_id = $2
            RETURNING id
            """,
            conversation_id,
            owner_id,
            title,
            utc_now(),
        )
        if row is None:
            raise ConversationNotFound(conversation_id)

    async def _rewrite_messages(
        self,
        conn: asyncpg.Connection,
        conversation_id: str,
        messages: list[Message],
    ) -> None:
        await conn.execute(
            """
            UPDATE conversations
            SET messages = $2::jsonb, updated_at = $3, last_message_at = $4
            WHERE id = $1
            """,
            conversation_id,
            _dump_messages(messages),
            utc_now(),
            last_message_time(messages),
        )

    async def replace_message_and_truncate(
        self,
        conversation_id: str,
        owner_id: str,
        message_id: str,
        new_message: Message,
    ) -> list[Message]:
        postgres = self._require_connection()

        async with postgres.transaction() as conn:
            row = await self._locked_row(conn, conversation_id, owner_id)
            messages = replace_and_truncate(
                _load_messages(row["messages"]), conversation_id, message_id, new_message
            )
            await self._rewrite_messages(conn, conversation_id, messages)

        return messages

    async def truncate_from(
        self,
        conversation_id: str,
        owner_id: str,
        message_id: str,
    ) -> list[Message]:
        postgres = self._require_connection()

        async with postgres.transaction() as conn:
            row = await self._locked_row(conn, conversation_id, owner_id)
            messages = truncate_from(_load_messages(row["messages"]), conversation_id, message_id)
            await self._rewrite_messages(conn, conversation_id, messages)

        return messages

    async def delete_conversation(self, conversation_id: str, owner_id: str) -> bool:
        postgres = self._require_connection()
        row = await postgres.fetch_row(
            "DELETE FROM conversations WHERE id = $1 AND owner_id = $2 RETURNING id",
            conversation_id,
            owner_id,
        )
        return row is not None

    async def share_conversation(self, conversation_id: str, owner_id: str) -> str:
        postgres = self._require_connection()
        share_token = generate_share_token()
        row = await postgres.fetch_row(
            """
            UPDATE conversations SET is_shared = TRUE, share_token = $3, updated_at = $4
            WHERE id = $1 AND owner_id = $2
            RETURNING share_token
            """,
            conversation_id,
            owner_id,
            share_token,
            utc_now(),
        )
        if row is None:
            raise ConversationNotFound(conversation_id)
        return row["share_token"]

    async def unshare_conversation(self, conversation_id: str, owner_id: str) -> None:
        postgres = self._require_connection()
        row = await postgres.fetch_row(
            """
            UPDATE conversations SET is_shared = FALSE, share_token = NULL, updated_at = $3
            WHERE id = $1 AND owner_id = $2
            RETURNING id
            """,
            conversation_id,
            owner_id,
            utc_now(),
        )
        if row is None:
            raise ConversationNotFound(conversation_id)
