"""Unit tests for the Edit/Regenerate Controller."""

import pytest

from src.conversations.editor import EditRegenerateController
from src.conversations.events import AssistantMessageEvent, UserMessageEvent
from src.conversations.orchestrator import ConversationOrchestrator
from src.conversations.store.in_memory import InMemoryMessageStore
from src.core.domain.chat import Attachment, Message
from src.core.errors import MessageNotFound, ValidationFailure
from src.memory.context.enricher import PromptEnricher
from src.memory.scheduler import MemoryCommitScheduler
from tests.fakes import FakeCompletionProvider, make_settings

ATTACHMENT = Attachment(name="img.png", url="https://cdn/img.png", media_type="image/png")


async def collect(events) -> list:
    return [event async for event in events]


@pytest.mark.asyncio
class TestEditRegenerateController:
    """Test cases for EditRegenerateController."""

    async def _seed(self) -> None:
        await self.store.append_messages("c1", "alice", [
            Message(id="m0", role="user", content="hello"),
            Message(id="m1", role="assistant", content="hi"),
            Message.from_user_input("foo", attachments=[ATTACHMENT], message_id="m2"),
            Message(id="m3", role="assistant", content="about foo"),
            Message(id="m4", role="user", content="and more"),
        ])

    def setup_method(self) -> None:
        settings = make_settings()
        self.store = InMemoryMessageStore()
        self.provider = FakeCompletionProvider(reply="regenerated")
        self.scheduler = MemoryCommitScheduler(None, config=settings)
        orchestrator = ConversationOrchestrator(
            self.store,
            self.provider,
            PromptEnricher(None, settings),
            self.scheduler,
            settings,
        )
        self.editor = EditRegenerateController(self.store, orchestrator)

    async def test_edit_message_keeps_attachments_and_truncates(self) -> None:
        await self._seed()

        messages = await self.editor.edit_message("c1", "alice", "m2", "bar")

        assert [m.id for m in messages] == ["m0", "m1", "m2"]
        assert messages[-1].text == "bar"
        assert messages[-1].attachments == [ATTACHMENT]

    async def test_edit_and_regenerate(self) -> None:
        await self._seed()

        events = await collect(self.editor.edit_and_regenerate("c1", "alice", "m2", "bar"))

        assert isinstance(events[0], UserMessageEvent)
        assert events[0].message.text == "bar"
        assert isinstance(events[-1], AssistantMessageEvent)

        conversation = await self.store.get_conversation("c1", "alice")
        assert [m.id for m in conversation.messages][:3] == ["m0", "m1", "m2"]
        assert len(conversation.messages) == 4
        assert conversation.messages[-1].text == "regenerated"

        sent_user = self.provider.calls[0][0][-1]
        assert [item.type for item in sent_user.content] == ["text", "image"]
        assert self.scheduler.pending == 0

    async def test_missing_message_aborts_without_mutation(self) -> None:
        await self._seed()

        with pytest.raises(MessageNotFound):
            await collect(self.editor.edit_and_regenerate("c1", "alice", "missing", "bar"))

        conversation = await self.store.get_conversation("c1", "alice")
        assert len(conversation.messages) == 5
        assert self.provider.calls == []

    async def test_assistant_message_cannot_be_regenerated_from(self) -> None:
        await self._seed()

        with pytest.raises(ValidationFailure):
            await collect(self.editor.edit_and_regenerate("c1", "alice", "m1", "bar"))

    async def test_empty_edit_rejected(self) -> None:
        await self._seed()

        with pytest.raises(ValidationFailure):
            await self.editor.edit_message("c1", "alice", "m2", "   ")

    async def test_regenerate_after_failed_turn(self) -> None:
        await self._seed()

        events = await collect(self.editor.regenerate("c1", "alice"))

        assert isinstance(events[-1], AssistantMessageEvent)
        conversation = await self.store.get_conversation("c1", "alice")
        assert [m.id for m in conversation.messages][:5] == ["m0", "m1", "m2", "m3", "m4"]
        assert conversation.messages[-1].text == "regenerated"

    async def test_regenerate_replaces_trailing_assistant(self) -> None:
        await self._seed()
        await collect(self.editor.regenerate("c1", "alice"))

        self.provider.reply = "second take"
        await collect(self.editor.regenerate("c1", "alice"))

        conversation = await self.store.get_conversation("c1", "alice")
        assert len(conversation.messages) == 6
        assert conversation.messages[-1].text == "second take"

    async def test_regenerate_empty_conversation(self) -> None:
        await self.store.create_conversation("alice")
        conversation = (await self.store.list_conversations("alice"))[0]

        with pytest.raises(ValidationFailure):
            await collect(self.editor.regenerate(conversation.id, "alice"))
