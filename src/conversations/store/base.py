"""Message store abstraction and the sequence operations shared by backends.

The helpers below are pure functions over message lists; backends wrap them
with their own locking/transaction discipline so every mutation is a single
read-modify-write of the conversation's message sequence.
"""

import secrets
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ...core.domain.chat import (
    AppendResult,
    Conversation,
    ConversationSummary,
    Message,
    TextPart,
    new_id,
    utc_now,
)
from ...core.errors import MessageNotFound

SHARE_TOKEN_BYTES = 24


def generate_share_token() -> str:
    """Opaque high-entropy token for read-only share links."""
    return secrets.token_urlsafe(SHARE_TOKEN_BYTES)


def filter_new_messages(
    existing: list[Message],
    incoming: list[Message],
) -> tuple[list[Message], dict[str, str]]:
    """Drop incoming messages already present, assigning durable ids to the rest.

    A message is already present if its id or client id matches one already
    stored (or one earlier in the same batch). Returns the messages to append,
    in order, and a map from every incoming client id to its durable id.
    """
    known: dict[str, str] = {}
    for message in existing:
        for key in message.dedup_keys:
            known[key] = message.id

    to_append: list[Message] = []
    id_map: dict[str, str] = {}
    for message in incoming:
        match = next((known[key] for key in message.dedup_keys if key in known), None)
        if match is None:
            message = message.model_copy(deep=True)
            if not message.id:
                message.id = new_id()
            for key in message.dedup_keys:
                known[key] = message.id
            to_append.append(message)
            match = message.id
        if message.client_id:
            id_map[message.client_id] = match
    return to_append, id_map


def index_of(messages: list[Message], conversation_id: str, message_id: str) -> int:
    """Position of ``message_id`` in the sequence.

    Raises:
        MessageNotFound: If the message is not in the sequence
    """
    for index, message in enumerate(messages):
        if message.id == message_id:
            return index
    raise MessageNotFound(conversation_id, message_id)


def build_replacement(original: Message, new_message: Message) -> Message:
    """Replacement for an edited message.

    Keeps the original id and role, takes the new text, and carries the
    original file parts over verbatim.
    """
    text = new_message.text or new_message.content
    return Message(
        id=original.id,
        client_id=original.client_id,
        role=original.role,
        content=text,
        parts=[TextPart(text=text), *[p.model_copy(deep=True) for p in original.file_parts]],
        timestamp=new_message.timestamp,
    )


def replace_and_truncate(
    messages: list[Message],
    conversation_id: str,
    message_id: str,
    new_message: Message,
) -> list[Message]:
    """Sequence with ``message_id`` replaced and everything after it dropped."""
    index = index_of(messages, conversation_id, message_id)
    return [*messages[:index], build_replacement(messages[index], new_message)]


def truncate_from(
    messages: list[Message],
    conversation_id: str,
    message_id: str,
) -> list[Message]:
    """Sequence with ``message_id`` and everything after it removed."""
    index = index_of(messages, conversation_id, message_id)
    return messages[:index]


def last_message_time(messages: list[Message]) -> datetime:
    return messages[-1].timestamp if messages else utc_now()


def summary_sort_key(summary: ConversationSummary) -> tuple:
    """Sort key: last-message time, falling back to last-updated time."""
    return (summary.last_message_at or summary.updated_at, summary.updated_at)


class MessageStore(ABC):
    """Durable per-conversation message log.

    Every operation taking an ``owner_id`` treats a conversation owned by a
    different user exactly like a missing one.
    """

    async def __aenter__(self) -> "MessageStore":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.disconnect()

    async def connect(self) -> None:
        """Open backend resources."""
        pass

    async def disconnect(self) -> None:
        """Release backend resources."""
        pass

    @abstractmethod
    async def create_conversation(
        self,
        owner_id: str,
        title: str | None = None,
    ) -> Conversation:
        """Insert a new empty conversation (title defaults to "New Chat")."""
        pass

    @abstractmethod
    async def get_conversation(
        self,
        conversation_id: str,
        owner_id: str | None = None,
    ) -> Conversation:
        """Fetch a conversation by id.

        Raises:
            ConversationNotFound: If absent, or not owned by ``owner_id`` when given
        """
        pass

    @abstractmethod
    async def get_shared_conversation(self, share_token: str) -> Conversation:
        """Fetch a shared conversation by its share token.

        Raises:
            ConversationNotFound: If no shared conversation carries the token
        """
        pass

    @abstractmethod
    async def list_conversations(self, owner_id: str) -> list[ConversationSummary]:
        """Summaries of the owner's conversations, most recently active first."""
        pass

    @abstractmethod
    async def append_messages(
        self,
        conversation_id: str,
        owner_id: str,
        messages: list[Message],
    ) -> AppendResult:
        """Idempotently append messages, creating the conversation if absent.

        Messages whose id or client id is already stored are dropped silently.
        """
        pass

    @abstractmethod
    async def set_title(self, conversation_id: str, owner_id: str, title: str) -> None:
        """Overwrite the conversation title."""
        pass

    @abstractmethod
    async def replace_message_and_truncate(
        self,
        conversation_id: str,
        owner_id: str,
        message_id: str,
        new_message: Message,
    ) -> list[Message]:
        """Replace a message's text (keeping its attachments) and drop its tail.

        Raises:
            ConversationNotFound: If the conversation is not visible to the owner
            MessageNotFound: If the message is not in the conversation
        """
        pass

    @abstractmethod
    async def truncate_from(
        self,
        conversation_id: str,
        owner_id: str,
        message_id: str,
    ) -> list[Message]:
        """Remove a message and every message after it.

        Raises:
            ConversationNotFound: If the conversation is not visible to the owner
            MessageNotFound: If the message is not in the conversation
        """
        pass

    @abstractmethod
    async def delete_conversation(self, conversation_id: str, owner_id: str) -> bool:
        """Remove a conversation; returns whether anything was deleted."""
        pass

    @abstractmethod
    async def share_conversation(self, conversation_id: str, owner_id: str) -> str:
        """Mark a conversation shared and issue a fresh share token."""
        pass

    @abstractmethod
    async def unshare_conversation(self, conversation_id: str, owner_id: str) -> None:
        """Revoke sharing and drop the share token."""
        pass
