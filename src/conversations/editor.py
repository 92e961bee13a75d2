"""Edit/Regenerate Controller: revise a sent message and regenerate what follows."""

import logging
from collections.abc import AsyncIterator

from ..core.domain.chat import Message
from ..core.domain.state import TurnState
from ..core.errors import ValidationFailure
from .events import TurnEvent, UserMessageEvent
from .orchestrator import ConversationOrchestrator
from .store.base import MessageStore, index_of

logger = logging.getLogger(__name__)


def _require_text(content: str) -> str:
    if not content or not content.strip():
        raise ValidationFailure("Message content is required")
    return content


class EditRegenerateController:
    """Destructive edits of a conversation followed by a fresh model step."""

    def __init__(self, store: MessageStore, orchestrator: ConversationOrchestrator):
        self.store = store
        self.orchestrator = orchestrator

    async def edit_message(
        self,
        conversation_id: str,
        owner_id: str,
        message_id: str,
        content: str,
    ) -> list[Message]:
        """Replace a message's text, keep its attachments and drop every later message."""
        content = _require_text(content)
        messages = await self.store.replace_message_and_truncate(
            conversation_id,
            owner_id,
            message_id,
            Message.from_user_input(content),
        )
        logger.info(
            f"Edited message {message_id} in conversation {conversation_id}; "
            f"{len(messages)} messages remain"
        )
        return messages

    async def edit_and_regenerate(
        self,
        conversation_id: str,
        owner_id: str,
        message_id: str,
        content: str,
        state: TurnState | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Edit a user message, then stream a new assistant response after it.

        Nothing is mutated if the message is missing or is not a user turn.

        Raises:
            ValidationFailure: If the new text is empty or the target is not a user message
            NotFoundError: If the conversation or message is not visible to the owner
        """
        content = _require_text(content)

        conversation = await self.store.get_conversation(conversation_id, owner_id)
        target = conversation.messages[index_of(conversation.messages, conversation_id, message_id)]
        if target.role != "user":
            raise ValidationFailure("Only user messages can be edited and regenerated")

        conversation.messages = await self.edit_message(
            conversation_id, owner_id, message_id, content
        )
        yield UserMessageEvent(message=conversation.messages[-1])

        async for event in self.orchestrator.run_completion(owner_id, conversation, state):
            yield event

    async def regenerate(
        self,
        conversation_id: str,
        owner_id: str,
        state: TurnState | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Re-run the model step for the last user message.

        A trailing assistant message is removed first so the new response
        takes its place.
        """
        conversation = await self.store.get_conversation(conversation_id, owner_id)
        if not conversation.messages:
            raise ValidationFailure("Conversation has no messages to regenerate")

        last = conversation.messages[-1]
        remaining = conversation.messages[:-1] if last.role == "assistant" else conversation.messages
        if not remaining or remaining[-1].role != "user":
            raise ValidationFailure("No user message to regenerate a response for")

        if last.role == "assistant":
            conversation.messages = await self.store.truncate_from(
                conversation_id, owner_id, last.id
            )
            logger.info(f"Dropped assistant message {last.id} for regeneration")

        async for event in self.orchestrator.run_completion(owner_id, conversation, state):
            yield event
