"""Base completion provider interface using strategy pattern."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from ..domain.chat import Message, TextPart


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    type: Literal["image"] = "image"
    image: str = Field(..., description="URL of the image")


ContentItem = Annotated[Union[TextContent, ImageContent], Field(discriminator="type")]


class ModelMessage(BaseModel):
    """Role-tagged message in the form the completion provider consumes."""

    role: Literal["system", "user", "assistant"]
    content: str | list[ContentItem]

    @classmethod
    def system(cls, text: str) -> "ModelMessage":
        return cls(role="system", content=text)


class GenerationOptions(BaseModel):
    """Generation options forwarded to the provider."""

    model: str = Field(..., description="Model identifier")
    temperature: float = Field(default=0.7)
    max_tokens: int | None = Field(default=None)


class CompletionDelta(BaseModel):
    """Incremental text chunk delivered while the completion streams."""

    text: str


class CompletionResult(BaseModel):
    """Final assembled assistant output; always the last stream event."""

    parts: list[TextPart] = Field(default_factory=list)
    finish_reason: str | None = None

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts)


CompletionEvent = Union[CompletionDelta, CompletionResult]


def to_model_message(message: Message) -> ModelMessage:
    """Convert a stored message into the provider-facing form.

    Text parts become text items, image attachments become image items and
    other attachments are skipped. A lone text item collapses to a string.
    """
    content: list[Any] = []
    for part in message.parts:
        if isinstance(part, TextPart):
            if part.text:
                content.append(TextContent(text=part.text))
        elif part.file.is_image:
            content.append(ImageContent(image=part.file.url))

    if not content:
        if message.content:
            return ModelMessage(role=message.role, content=message.content)
        content = [TextContent(text="")]

    if len(content) == 1 and isinstance(content[0], TextContent):
        return ModelMessage(role=message.role, content=content[0].text)

    return ModelMessage(role=message.role, content=content)


def to_model_messages(messages: list[Message]) -> list[ModelMessage]:
    return [to_model_message(message) for message in messages]


class CompletionProvider(ABC):
    """Abstract base class for completion providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Name/identifier of the provider."""
        pass

    @abstractmethod
    def stream(
        self,
        messages: list[ModelMessage],
        options: GenerationOptions,
    ) -> AsyncIterator[CompletionEvent]:
        """Stream a completion for the given messages.

        Args:
            messages: Ordered role-tagged message list
            options: Generation options

        Yields:
            ``CompletionDelta`` events followed by exactly one ``CompletionResult``

        Raises:
            CompletionError: If the provider fails or the stream is interrupted
        """
        pass

    async def __aenter__(self) -> "CompletionProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Release provider resources."""
        pass
