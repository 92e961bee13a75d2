"""Events emitted while a turn runs; also the server-sent event wire format."""

from typing import ClassVar

from pydantic import Field

from ..core.domain.chat import Message, WireModel


class TurnEvent(WireModel):
    """Base class for turn events. ``event`` names the SSE event type."""

    event: ClassVar[str] = "message"

    def to_sse(self) -> str:
        """Render as one server-sent event frame."""
        data = self.model_dump_json(by_alias=True)
        return f"event: {self.event}\ndata: {data}\n\n"


class UserMessageEvent(TurnEvent):
    """The user turn is durably persisted."""

    event: ClassVar[str] = "user_message"

    message: Message
    id_map: dict[str, str] = Field(
        default_factory=dict,
        description="Client-provisional id to durable id",
    )


class DeltaEvent(TurnEvent):
    """A chunk of assistant text arrived from the provider."""

    event: ClassVar[str] = "delta"

    text: str


class AssistantMessageEvent(TurnEvent):
    """The completed assistant turn is durably persisted."""

    event: ClassVar[str] = "assistant_message"

    message: Message


class ErrorEvent(TurnEvent):
    """Terminal failure after the stream already started."""

    event: ClassVar[str] = "error"

    error: str
    type: str
