"""Request and response bodies for the HTTP API."""

from datetime import datetime

from pydantic import Field

from ...core.domain.chat import Attachment, Conversation, Message, WireModel


class CreateConversationRequest(WireModel):
    title: str | None = Field(None, description="Initial title, defaults to 'New Chat'")


class UpdateConversationRequest(WireModel):
    title: str | None = Field(None, description="New title")
    messages: list[Message] | None = Field(
        None,
        description="Messages to append idempotently",
    )


class ConversationResponse(Conversation):
    """Conversation plus the provisional-to-durable id map of the last append."""

    id_map: dict[str, str] = Field(default_factory=dict)


class EditMessageRequest(WireModel):
    content: str
    action: str = "replace"


class RegenerateEditRequest(WireModel):
    content: str


class ChatRequest(WireModel):
    text: str = ""
    attachments: list[Attachment] = Field(default_factory=list)
    id: str | None = Field(None, description="Durable id, if the client already has one")
    client_id: str | None = Field(None, description="Provisional client-side id")


class MessagesResponse(WireModel):
    messages: list[Message]


class ShareResponse(WireModel):
    share_token: str


class DeleteResponse(WireModel):
    success: bool = True


class DeleteMemoryResponse(WireModel):
    success: bool = True
    deleted: int = 0


class MemoryStatsResponse(WireModel):
    total: int = 0
    facts: int = 0
    preferences: int = 0
    context: int = 0
    last_updated: datetime | None = None


class MemoryListResponse(WireModel):
    facts: list[str] = Field(default_factory=list)
    preferences: list[str] = Field(default_factory=list)
    context: list[str] = Field(default_factory=list)
    total: int = 0
