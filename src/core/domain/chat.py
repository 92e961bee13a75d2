"""Conversation and message models.

Messages are stored as an ordered list on their Conversation. A Message's
content is a list of typed parts (text or file reference); ``content`` is a
flattened display copy of the text parts kept alongside for convenience.
"""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


DEFAULT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 50


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a durable identifier."""
    return uuid.uuid4().hex


class WireModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Attachment(WireModel):
    """Reference to an uploaded blob held by the object store."""

    name: str = Field(..., description="Display name of the file")
    url: str = Field(..., description="Stable CDN URL")
    media_type: str = Field(..., description="MIME type of the blob")
    size: int | None = Field(None, description="Content length in bytes")
    uuid: str | None = Field(None, description="Stable storage identifier")

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")


class TextPart(WireModel):
    type: Literal["text"] = "text"
    text: str = ""


class FilePart(WireModel):
    type: Literal["file"] = "file"
    file: Attachment


Part = Annotated[Union[TextPart, FilePart], Field(discriminator="type")]


class Message(WireModel):
    """One turn in a conversation."""

    id: str | None = Field(
        None,
        description="Durable id; assigned by the store when not supplied",
    )
    client_id: str | None = Field(
        None,
        description="Provisional id generated by the client for optimistic display",
    )
    role: Literal["user", "assistant"]
    content: str = Field(default="", description="Flattened display text")
    parts: list[Part] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)

    @field_validator("timestamp")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _sync_content_and_parts(self) -> "Message":
        if not self.parts:
            self.parts = [TextPart(text=self.content)]
        text_parts = self.text_parts
        if len(text_parts) == 1:
            self.content = text_parts[0]
        elif text_parts and not self.content:
            self.content = "".join(text_parts)
        return self

    @property
    def text_parts(self) -> list[str]:
        return [part.text for part in self.parts if isinstance(part, TextPart)]

    @property
    def file_parts(self) -> list[FilePart]:
        return [part for part in self.parts if isinstance(part, FilePart)]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def attachments(self) -> list[Attachment]:
        """Attachments carried by this message, in part order."""
        return [part.file for part in self.file_parts]

    @property
    def text(self) -> str:
        """Message text reconstructed by concatenating its text parts."""
        return "".join(self.text_parts)

    @property
    def dedup_keys(self) -> set[str]:
        return {key for key in (self.id, self.client_id) if key}

    @classmethod
    def from_user_input(
        cls,
        text: str,
        attachments: list[Attachment] | None = None,
        message_id: str | None = None,
        client_id: str | None = None,
    ) -> "Message":
        """Build a user message from raw input text and optional attachments."""
        parts: list[Any] = [TextPart(text=text)]
        parts.extend(FilePart(file=attachment) for attachment in attachments or [])
        return cls(
            id=message_id,
            client_id=client_id,
            role="user",
            content=text,
            parts=parts,
        )

    @classmethod
    def assistant(cls, text: str, parts: list[Any] | None = None) -> "Message":
        """Build an assistant message from the completion result."""
        return cls(
            id=new_id(),
            role="assistant",
            content=text,
            parts=parts or [TextPart(text=text)],
        )


class Conversation(WireModel):
    """A titled, ordered sequence of messages owned by one user."""

    id: str = Field(default_factory=new_id)
    title: str = DEFAULT_TITLE
    owner_id: str = Field(..., description="Opaque id from the auth provider")
    messages: list[Message] = Field(default_factory=list)
    is_shared: bool = False
    share_token: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_message_at: datetime | None = None

    @property
    def has_default_title(self) -> bool:
        return self.title == DEFAULT_TITLE

    def summary(self) -> "ConversationSummary":
        return ConversationSummary(
            id=self.id,
            title=self.title,
            is_shared=self.is_shared,
            share_token=self.share_token,
            created_at=self.created_at,
            updated_at=self.updated_at,
            last_message_at=self.last_message_at,
            message_count=len(self.messages),
        )


class ConversationSummary(WireModel):
    """Listing view of a conversation without message bodies."""

    id: str
    title: str
    is_shared: bool = False
    share_token: str | None = None
    created_at: datetime
    updated_at: datetime
    last_message_at: datetime | None = None
    message_count: int = 0


class AppendResult(WireModel):
    """Outcome of an idempotent append.

    ``id_map`` resolves every incoming client-side provisional id to the
    durable id now held by the store.
    """

    conversation: Conversation
    appended: list[Message] = Field(default_factory=list)
    id_map: dict[str, str] = Field(default_factory=dict)


def derive_title(text: str) -> str:
    """Conversation title derived from the first user message text."""
    text = text.strip()
    if not text:
        return DEFAULT_TITLE
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + "..."
    return text
