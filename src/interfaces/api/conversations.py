"""Conversation routes: CRUD, message edits, streamed turns and sharing."""

import logging

from fastapi import APIRouter, Depends, status

from ...core.domain.chat import Conversation, ConversationSummary, Message
from ...core.errors import ConversationNotFound, ValidationFailure
from .auth import get_current_user_id
from .dependencies import ChatServices, get_services
from .schemas import (
    ChatRequest,
    ConversationResponse,
    CreateConversationRequest,
    DeleteResponse,
    EditMessageRequest,
    MessagesResponse,
    RegenerateEditRequest,
    ShareResponse,
    UpdateConversationRequest,
)
from .streaming import stream_turn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])
shared_router = APIRouter(prefix="/shared", tags=["shared"])


@router.post("", response_model=Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    body: CreateConversationRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> Conversation:
    """Create an empty conversation."""
    title = body.title.strip() if body and body.title else None
    return await services.store.create_conversation(user_id, title or None)


@router.get("", response_model=list[ConversationSummary])
async def list_conversations(
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> list[ConversationSummary]:
    """Summaries of the caller's conversations, most recently active first."""
    return await services.store.list_conversations(user_id)


@router.get("/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> Conversation:
    return await services.store.get_conversation(conversation_id, user_id)


@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: str,
    body: UpdateConversationRequest,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> ConversationResponse:
    """Append messages idempotently and/or set the title.

    Appending creates the conversation if it does not exist yet. The response
    carries ``idMap`` so the client can swap provisional ids for durable ones.
    """
    if body.title is not None and not body.title.strip():
        raise ValidationFailure("Title must not be empty")

    id_map: dict[str, str] = {}
    if body.messages:
        result = await services.store.append_messages(conversation_id, user_id, body.messages)
        id_map = result.id_map
        logger.debug(
            f"Appended {len(result.appended)}/{len(body.messages)} messages "
            f"to conversation {conversation_id}"
        )

    if body.title is not None:
        await services.store.set_title(conversation_id, user_id, body.title.strip())

    conversation = await services.store.get_conversation(conversation_id, user_id)
    return ConversationResponse(
        **conversation.model_dump(exclude={"messages"}),
        messages=conversation.messages,
        id_map=id_map,
    )


@router.delete("/{conversation_id}", response_model=DeleteResponse)
async def delete_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> DeleteResponse:
    if not await services.store.delete_conversation(conversation_id, user_id):
        raise ConversationNotFound(conversation_id)
    return DeleteResponse()


@router.patch("/{conversation_id}/messages/{message_id}", response_model=MessagesResponse)
async def edit_message(
    conversation_id: str,
    message_id: str,
    body: EditMessageRequest,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> MessagesResponse:
    """Replace a message's text and drop every message after it."""
    if body.action != "replace":
        raise ValidationFailure(f"Unsupported action: {body.action}", {"action": body.action})

    messages = await services.editor.edit_message(
        conversation_id, user_id, message_id, body.content
    )
    return MessagesResponse(messages=messages)


@router.delete("/{conversation_id}/messages/{message_id}", response_model=MessagesResponse)
async def truncate_messages(
    conversation_id: str,
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> MessagesResponse:
    """Remove a message and everything after it."""
    messages = await services.store.truncate_from(conversation_id, user_id, message_id)
    return MessagesResponse(messages=messages)


@router.post("/{conversation_id}/chat")
async def chat(
    conversation_id: str,
    body: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """Run a turn and stream it as server-sent events."""
    message = Message.from_user_input(
        body.text,
        attachments=body.attachments,
        message_id=body.id,
        client_id=body.client_id,
    )
    events = services.orchestrator.run_turn(user_id, conversation_id, message)
    return await stream_turn(events)


@router.post("/{conversation_id}/messages/{message_id}/edit")
async def edit_and_regenerate(
    conversation_id: str,
    message_id: str,
    body: RegenerateEditRequest,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """Edit a user message and stream a regenerated response."""
    events = services.editor.edit_and_regenerate(
        conversation_id, user_id, message_id, body.content
    )
    return await stream_turn(events)


@router.post("/{conversation_id}/regenerate")
async def regenerate(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """Re-run the model step for the last user message."""
    events = services.editor.regenerate(conversation_id, user_id)
    return await stream_turn(events)


@router.post("/{conversation_id}/share", response_model=ShareResponse)
async def share_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> ShareResponse:
    token = await services.store.share_conversation(conversation_id, user_id)
    logger.info(f"Conversation {conversation_id} shared")
    return ShareResponse(share_token=token)


@router.delete("/{conversation_id}/share", response_model=DeleteResponse)
async def unshare_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> DeleteResponse:
    await services.store.unshare_conversation(conversation_id, user_id)
    return DeleteResponse()


@shared_router.get("/{share_token}", response_model=Conversation)
async def get_shared_conversation(
    share_token: str,
    services: ChatServices = Depends(get_services),
) -> Conversation:
    """Read-only view of a shared conversation; no authentication."""
    return await services.store.get_shared_conversation(share_token)
