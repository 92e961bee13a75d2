"""Process-local message store.

Used for development and tests. Each conversation has its own asyncio lock so
concurrent mutations of one conversation serialize while different
conversations proceed independently. Reads and writes hand out deep copies.
"""

import asyncio
import logging
from collections import defaultdict

from ...core.domain.chat import (
    DEFAULT_TITLE,
    AppendResult,
    Conversation,
    ConversationSummary,
    Message,
    utc_now,
)
from ...core.errors import ConversationNotFound
from .base import (
    MessageStore,
    filter_new_messages,
    generate_share_token,
    last_message_time,
    replace_and_truncate,
    summary_sort_key,
    truncate_from,
)

logger = logging.getLogger(__name__)


class InMemoryMessageStore(MessageStore):
    """Dict-backed message store."""

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _owned(self, conversation_id: str, owner_id: str | None) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None or (owner_id is not None and conversation.owner_id != owner_id):
            raise ConversationNotFound(conversation_id)
        return conversation

    async def create_conversation(
        self,
        owner_id: str,
        title: str | None = None,
    ) -> Conversation:
        conversation = Conversation(owner_id=owner_id, title=title or DEFAULT_TITLE)
        self._conversations[conversation.id] = conversation
        logger.debug(f"Created conversation {conversation.id} for user {owner_id}")
        return conversation.model_copy(deep=True)

    async def get_conversation(
        self,
        conversation_id: str,
        owner_id: str | None = None,
    ) -> Conversation:
        return self._owned(conversation_id, owner_id).model_copy(deep=True)

    async def get_shared_conversation(self, share_token: str) -> Conversation:
        for conversation in self._conversations.values():
            if conversation.is_shared and conversation.share_token == share_token:
                return conversation.model_copy(deep=True)
        raise ConversationNotFound(share_token)

    async def list_conversations(self, owner_id: str) -> list[ConversationSummary]:
        summaries = [
            conversation.summary()
            for conversation in self._conversations.values()
            if conversation.owner_id == owner_id
        ]
        return sorted(summaries, key=summary_sort_key, reverse=True)

    async def append_messages(
        self,
        conversation_id: str,
        owner_id: str,
        messages: list[Message],
    ) -> AppendResult:
        async with self._locks[conversation_id]:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                conversation = Conversation(id=conversation_id, owner_id=owner_id)
                self._conversations[conversation_id] = conversation
                logger.info(f"Created conversation {conversation_id} on first append")
            elif conversation.owner_id != owner_id:
                raise ConversationNotFound(conversation_id)

            to_append, id_map = filter_new_messages(conversation.messages, messages)
            if to_append:
                conversation.messages.extend(to_append)
                conversation.updated_at = utc_now()
                conversation.last_message_at = to_append[-1].timestamp

            skipped = len(messages) - len(to_append)
            if skipped:
                logger.debug(f"Skipped {skipped} duplicate message(s) in {conversation_id}")

            return AppendResult(
                conversation=conversation.model_copy(deep=True),
                appended=[message.model_copy(deep=True) for message in to_append],
                id_map=id_map,
            )

    async def set_title(self, conversation_id: str, owner_id: str, title: str) -> None:
        async with self._locks[conversation_id]:
            conversation = self._owned(conversation_id, owner_id)
            conversation.title = title
            conversation.updated_at = utc_now()

    async def replace_message_and_truncate(
        self,
        conversation_id: str,
        owner_id: str,
        message_id: str,
        new_message: Message,
    ) -> list[Message]:
        async with self._locks[conversation_id]:
            conversation = self._owned(conversation_id, owner_id)
            messages = replace_and_truncate(
                conversation.messages, conversation_id, message_id, new_message
            )
            self._write_messages(conversation, messages)
            return [message.model_copy(deep=True) for message in messages]

    async def truncate_from(
        self,
        conversation_id: str,
        owner_id: str,
        message_id: str,
    ) -> list[Message]:
        async with self._locks[conversation_id]:
            conversation = self._owned(conversation_id, owner_id)
            messages = truncate_from(conversation.messages, conversation_id, message_id)
            self._write_messages(conversation, messages)
            return [message.model_copy(deep=True) for message in messages]

    def _write_messages(self, conversation: Conversation, messages: list[Message]) -> None:
        conversation.messages = messages
        conversation.updated_at = utc_now()
        conversation.last_message_at = last_message_time(messages)

    async def delete_conversation(self, conversation_id: str, owner_id: str) -> bool:
        async with self._locks[conversation_id]:
            conversation = self._conversations.get(conversation_id)
            if conversation is None or conversation.owner_id != owner_id:
                return False
            del self._conversations[conversation_id]
        # The lock outlives the conversation; waiters may still hold references to it
        return True

    async def share_conversation(self, conversation_id: str, owner_id: str) -> str:
        async with self._locks[conversation_id]:
            conversation = self._owned(conversation_id, owner_id)
            conversation.is_shared = True
            conversation.share_token = generate_share_token()
            conversation.updated_at = utc_now()
            return conversation.share_token

    async def unshare_conversation(self, conversation_id: str, owner_id: str) -> None:
        async with self._locks[conversation_id]:
            conversation = self._owned(conversation_id, owner_id)
            conversation.is_shared = False
            conversation.share_token = None
            conversation.updated_at = utc_now()
