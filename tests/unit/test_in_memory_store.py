"""Unit tests for the in-memory message store and shared sequence helpers."""

import asyncio

import pytest

from src.conversations.store.base import filter_new_messages
from src.conversations.store.in_memory import InMemoryMessageStore
from src.core.domain.chat import DEFAULT_TITLE, Attachment, Message
from src.core.errors import ConversationNotFound, MessageNotFound


def user(text: str, message_id: str | None = None, **kwargs) -> Message:
    return Message.from_user_input(text, message_id=message_id, **kwargs)


def assistant(text: str, message_id: str) -> Message:
    return Message(id=message_id, role="assistant", content=text)


class TestFilterNewMessages:

    def test_assigns_ids_and_maps_client_ids(self) -> None:
        to_append, id_map = filter_new_messages([], [user("hi", client_id="c1")])

        assert len(to_append) == 1
        assert to_append[0].id
        assert id_map == {"c1": to_append[0].id}

    def test_duplicate_by_client_id_resolves_to_existing(self) -> None:
        existing = [user("hi", message_id="m1", client_id="c1")]

        to_append, id_map = filter_new_messages(existing, [user("hi", client_id="c1")])

        assert to_append == []
        assert id_map == {"c1": "m1"}

    def test_duplicates_within_one_batch(self) -> None:
        to_append, _ = filter_new_messages([], [user("a", message_id="m1"), user("a", message_id="m1")])

        assert len(to_append) == 1


@pytest.mark.asyncio
class TestInMemoryMessageStore:
    """Test cases for InMemoryMessageStore."""

    def setup_method(self) -> None:
        self.store = InMemoryMessageStore()

    async def test_create_and_get(self) -> None:
        conversation = await self.store.create_conversation("alice")

        fetched = await self.store.get_conversation(conversation.id, "alice")
        assert fetched.title == DEFAULT_TITLE
        assert fetched.owner_id == "alice"

    async def test_ownership_isolation(self) -> None:
        conversation = await self.store.create_conversation("bob")

        with pytest.raises(ConversationNotFound):
            await self.store.get_conversation(conversation.id, "alice")

    async def test_append_creates_conversation(self) -> None:
        result = await self.store.append_messages("conv-1", "alice", [user("Hello", "m1")])

        assert result.conversation.id == "conv-1"
        assert [m.id for m in result.conversation.messages] == ["m1"]

    async def test_append_is_idempotent(self) -> None:
        messages = [user("Hello", "m1"), assistant("Hi!", "m2")]

        await self.store.append_messages("conv-1", "alice", messages)
        second = await self.store.append_messages("conv-1", "alice", messages)

        assert second.appended == []
        assert [m.id for m in second.conversation.messages] == ["m1", "m2"]

    async def test_append_to_foreign_conversation_is_not_found(self) -> None:
        await self.store.append_messages("conv-1", "bob", [user("mine", "m1")])

        with pytest.raises(ConversationNotFound):
            await self.store.append_messages("conv-1", "alice", [user("intrusion", "m2")])

    async def test_concurrent_appends_of_same_message(self) -> None:
        message = user("Hello", "m1")

        await asyncio.gather(
            self.store.append_messages("conv-1", "alice", [message]),
            self.store.append_messages("conv-1", "alice", [message]),
        )

        conversation = await self.store.get_conversation("conv-1", "alice")
        assert [m.id for m in conversation.messages] == ["m1"]

    async def test_returned_copies_do_not_alias_state(self) -> None:
        await self.store.append_messages("conv-1", "alice", [user("Hello", "m1")])

        fetched = await self.store.get_conversation("conv-1", "alice")
        fetched.messages.clear()

        again = await self.store.get_conversation("conv-1", "alice")
        assert len(again.messages) == 1

    async def test_replace_preserves_attachments_and_truncates(self) -> None:
        attachment = Attachment(name="img.png", url="https://cdn/img.png", media_type="image/png")
        await self.store.append_messages("conv-1", "alice", [
            user("first", "m0"),
            assistant("reply", "m1"),
            user("foo", "m2", attachments=[attachment]),
            assistant("reply 2", "m3"),
            user("more", "m4"),
        ])

        messages = await self.store.replace_message_and_truncate(
            "conv-1", "alice", "m2", Message.from_user_input("bar")
        )

        assert [m.id for m in messages] == ["m0", "m1", "m2"]
        edited = messages[-1]
        assert edited.text == "bar"
        assert edited.role == "user"
        assert [a.name for a in edited.attachments] == ["img.png"]

    async def test_replace_missing_message(self) -> None:
        await self.store.append_messages("conv-1", "alice", [user("first", "m0")])

        with pytest.raises(MessageNotFound):
            await self.store.replace_message_and_truncate(
                "conv-1", "alice", "nope", Message.from_user_input("bar")
            )

    async def test_truncate_from_is_prefix_preserving(self) -> None:
        await self.store.append_messages("conv-1", "alice", [
            user("a", "m0"), assistant("b", "m1"), user("c", "m2"),
        ])

        messages = await self.store.truncate_from("conv-1", "alice", "m1")

        assert [m.id for m in messages] == ["m0"]

    async def test_list_orders_by_last_activity(self) -> None:
        await self.store.append_messages("older", "alice", [user("a", "m0")])
        await self.store.append_messages("newer", "alice", [user("b", "m1")])
        await self.store.append_messages("other", "bob", [user("c", "m2")])

        summaries = await self.store.list_conversations("alice")

        assert [s.id for s in summaries] == ["newer", "older"]

    async def test_delete(self) -> None:
        await self.store.append_messages("conv-1", "alice", [user("a", "m0")])

        assert await self.store.delete_conversation("conv-1", "bob") is False
        assert await self.store.delete_conversation("conv-1", "alice") is True
        with pytest.raises(ConversationNotFound):
            await self.store.get_conversation("conv-1", "alice")

    async def test_delete_keeps_lock_shared_with_waiters(self) -> None:
        await self.store.append_messages("conv-1", "alice", [user("a", "m0")])
        lock = self.store._locks["conv-1"]

        async with lock:
            deletion = asyncio.create_task(self.store.delete_conversation("conv-1", "alice"))
            append = asyncio.create_task(
                self.store.append_messages("conv-1", "alice", [user("b", "m1")])
            )
            await asyncio.sleep(0)

        assert await deletion is True
        await append

        assert self.store._locks["conv-1"] is lock
        conversation = await self.store.get_conversation("conv-1", "alice")
        assert [m.id for m in conversation.messages] == ["m1"]

    async def test_share_and_unshare(self) -> None:
        await self.store.append_messages("conv-1", "alice", [user("a", "m0")])

        token = await self.store.share_conversation("conv-1", "alice")
        shared = await self.store.get_shared_conversation(token)
        assert shared.id == "conv-1"
        assert shared.is_shared is True

        await self.store.unshare_conversation("conv-1", "alice")
        with pytest.raises(ConversationNotFound):
            await self.store.get_shared_conversation(token)

    async def test_set_title(self) -> None:
        await self.store.append_messages("conv-1", "alice", [user("a", "m0")])

        await self.store.set_title("conv-1", "alice", "Renamed")

        assert (await self.store.get_conversation("conv-1", "alice")).title == "Renamed"
