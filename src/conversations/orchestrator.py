"""Conversation Orchestrator: drives one full chat turn.

A turn persists the user message, trims the history, enriches the system
prompt with long-term memory, streams the completion, persists the finished
assistant message and finally schedules a detached memory commit. The
ordering is strict: nothing is sent to the provider before the user message
is durable, and an assistant message is only persisted once its stream has
completed.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing

from ..core.completions.base import (
    CompletionDelta,
    CompletionProvider,
    CompletionResult,
    GenerationOptions,
    ModelMessage,
    to_model_messages,
)
from ..core.completions.provider_factory import default_generation_options
from ..core.config import Settings, settings as default_settings
from ..core.domain.chat import AppendResult, Conversation, Message, derive_title
from ..core.domain.state import TurnPhase, TurnState
from ..core.errors import CompletionError, ValidationFailure
from ..memory.context.enricher import PromptEnricher
from ..memory.scheduler import MemoryCommitScheduler
from .context_window import trim
from .events import AssistantMessageEvent, DeltaEvent, TurnEvent, UserMessageEvent
from .store.base import MessageStore

logger = logging.getLogger(__name__)


def _persisted_copy(result: AppendResult, message: Message) -> Message:
    """The stored version of ``message`` after an idempotent append."""
    if result.appended:
        return result.appended[0]
    keys = message.dedup_keys
    for stored in result.conversation.messages:
        if stored.dedup_keys & keys:
            return stored
    raise ValidationFailure("Message could not be resolved after append")


class ConversationOrchestrator:
    """Coordinates the message store, memory enrichment and the completion provider."""

    def __init__(
        self,
        store: MessageStore,
        provider: CompletionProvider,
        enricher: PromptEnricher,
        scheduler: MemoryCommitScheduler,
        config: Settings | None = None,
        options: GenerationOptions | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            store: Durable message store
            provider: Streaming completion provider
            enricher: System prompt builder
            scheduler: Detached memory commit scheduler
            config: Settings, defaults to global settings
            options: Generation options, defaults to those derived from settings
        """
        self.store = store
        self.provider = provider
        self.enricher = enricher
        self.scheduler = scheduler
        self.config = config or default_settings
        self.options = options or default_generation_options(self.config)

    async def run_turn(
        self,
        owner_id: str,
        conversation_id: str,
        message: Message,
        state: TurnState | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Run a full turn for a new user message.

        The conversation is created on first use. Closing the iterator before
        the ``assistant_message`` event abandons the turn without persisting
        a partial assistant response.

        Yields:
            ``UserMessageEvent``, then ``DeltaEvent`` chunks, then
            ``AssistantMessageEvent``

        Raises:
            ChatError: Persistence or completion failures; the user message
                stays persisted if it was already written
        """
        if message.role != "user":
            raise ValidationFailure("Only user messages start a turn")
        if not message.text.strip() and not message.attachments:
            raise ValidationFailure("Message text is required")

        state = state or TurnState(conversation_id=conversation_id, owner_id=owner_id)
        request_id = uuid.uuid4().hex[:8]

        try:
            state.transition_to(TurnPhase.AWAITING_USER_PERSIST)
            result = await self.store.append_messages(conversation_id, owner_id, [message])
            user_message = _persisted_copy(result, message)
            conversation = result.conversation
            state.user_message_id = user_message.id

            if conversation.has_default_title:
                title = derive_title(user_message.text)
                if title != conversation.title:
                    await self.store.set_title(conversation_id, owner_id, title)
                    conversation.title = title

            logger.info(
                f"[REQ-{request_id}] User message {user_message.id} persisted "
                f"in conversation {conversation_id}"
            )
            yield UserMessageEvent(message=user_message, id_map=result.id_map)

            index = next(
                i for i, stored in enumerate(conversation.messages) if stored.id == user_message.id
            )
            if index < len(conversation.messages) - 1:
                # A retried turn that already landed: replay it, never re-answer it out of order
                answer = conversation.messages[index + 1]
                state.transition_to(TurnPhase.IDLE)
                logger.info(
                    f"[REQ-{request_id}] User message {user_message.id} already answered "
                    f"in conversation {conversation_id}; skipping completion"
                )
                if answer.role == "assistant":
                    state.assistant_message_id = answer.id
                    yield AssistantMessageEvent(message=answer)
                return

            async with aclosing(self._complete(owner_id, conversation, state, request_id)) as events:
                async for event in events:
                    yield event

        except (GeneratorExit, asyncio.CancelledError):
            if state.phase != TurnPhase.IDLE:
                state.fail("interrupted")
                logger.info(f"[REQ-{request_id}] Turn interrupted in conversation {conversation_id}")
            raise
        except Exception as e:
            if state.phase != TurnPhase.FAILED:
                state.fail(str(e))
            logger.error(f"[REQ-{request_id}] Turn failed in conversation {conversation_id}: {e}")
            raise

    async def run_completion(
        self,
        owner_id: str,
        conversation: Conversation,
        state: TurnState | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Run the model step for a conversation whose last message is a user turn.

        Used for regeneration after an edit and for retrying a failed turn
        without re-submitting the user text.
        """
        if not conversation.messages or conversation.messages[-1].role != "user":
            raise ValidationFailure("Conversation does not end with a user message")

        state = state or TurnState(conversation_id=conversation.id, owner_id=owner_id)
        state.user_message_id = conversation.messages[-1].id
        request_id = uuid.uuid4().hex[:8]

        try:
            async with aclosing(self._complete(owner_id, conversation, state, request_id)) as events:
                async for event in events:
                    yield event
        except (GeneratorExit, asyncio.CancelledError):
            if state.phase != TurnPhase.IDLE:
                state.fail("interrupted")
            raise
        except Exception as e:
            if state.phase != TurnPhase.FAILED:
                state.fail(str(e))
            logger.error(f"[REQ-{request_id}] Completion failed in conversation {conversation.id}: {e}")
            raise

    async def _complete(
        self,
        owner_id: str,
        conversation: Conversation,
        state: TurnState,
        request_id: str,
    ) -> AsyncIterator[TurnEvent]:
        user_message = conversation.messages[-1]

        state.transition_to(TurnPhase.AWAITING_COMPLETION)
        history = trim(conversation.messages, self.config.max_context_messages)
        system_prompt = await self.enricher.build_system_prompt(
            self.config.base_system_prompt,
            owner_id,
            user_message.text,
        )
        model_messages = [ModelMessage.system(system_prompt), *to_model_messages(history)]

        logger.debug(
            f"[REQ-{request_id}] Requesting completion from {self.provider.provider_name} "
            f"with {len(model_messages)} messages"
        )

        result: CompletionResult | None = None
        async with aclosing(self.provider.stream(model_messages, self.options)) as stream:
            async for event in stream:
                if isinstance(event, CompletionDelta):
                    if event.text:
                        yield DeltaEvent(text=event.text)
                elif isinstance(event, CompletionResult):
                    result = event

        if result is None:
            raise CompletionError("Completion stream ended without a final result")

        state.transition_to(TurnPhase.AWAITING_ASSISTANT_PERSIST)
        assistant = Message.assistant(result.text, parts=list(result.parts) or None)
        append_result = await self.store.append_messages(conversation.id, owner_id, [assistant])
        assistant = _persisted_copy(append_result, assistant)
        state.assistant_message_id = assistant.id
        state.transition_to(TurnPhase.IDLE)

        logger.info(
            f"[REQ-{request_id}] Assistant message {assistant.id} persisted "
            f"in conversation {conversation.id} ({result.finish_reason})"
        )

        state.memory_scheduled = (
            self.scheduler.schedule(owner_id, [user_message, assistant], conversation.id)
            is not None
        )

        yield AssistantMessageEvent(message=assistant)
