"""Unit tests for context window trimming."""

from dataclasses import dataclass

from src.conversations.context_window import trim


@dataclass
class Msg:
    role: str
    text: str


def conversation(count: int) -> list[Msg]:
    roles = ("user", "assistant")
    return [Msg(roles[i % 2], f"m{i}") for i in range(count)]


class TestTrim:
    """Test cases for trim."""

    def test_within_bound_is_unchanged(self) -> None:
        messages = conversation(5)

        assert trim(messages, 5) == messages

    def test_keeps_most_recent_messages(self) -> None:
        messages = conversation(10)

        result = trim(messages, 4)

        assert [m.text for m in result] == ["m6", "m7", "m8", "m9"]

    def test_system_messages_always_retained_in_place(self) -> None:
        messages = [Msg("system", "sys"), *conversation(6), Msg("system", "late-sys")]

        result = trim(messages, 2)

        assert [m.text for m in result] == ["sys", "m4", "m5", "late-sys"]

    def test_length_bound(self) -> None:
        messages = [Msg("system", "a"), Msg("system", "b"), *conversation(30)]

        result = trim(messages, 20)

        assert len(result) <= 20 + 2
        assert sum(1 for m in result if m.role == "system") == 2

    def test_order_preserved(self) -> None:
        messages = conversation(25)

        result = trim(messages, 20)

        indexes = [messages.index(m) for m in result]
        assert indexes == sorted(indexes)

    def test_zero_keeps_only_system(self) -> None:
        messages = [Msg("system", "s"), *conversation(3)]

        assert [m.text for m in trim(messages, 0)] == ["s"]
