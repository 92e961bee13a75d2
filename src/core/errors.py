"""Error taxonomy shared by the store, memory, completion and HTTP layers."""

from enum import Enum
from typing import Any


class ErrorType(str, Enum):
    """Standard error types surfaced to API callers."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    VALIDATION = "validation_failure"
    UPSTREAM = "upstream_failure"


class ChatError(Exception):
    """Base exception for the chat service."""

    status_code: int = 500
    error_type: ErrorType = ErrorType.UPSTREAM

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        """Render the error as a JSON-serializable payload."""
        return {
            "error": self.message,
            "type": self.error_type.value,
            "details": self.details,
        }


class NotFoundError(ChatError):
    """Resource is absent or owned by someone else (treated identically)."""

    status_code = 404
    error_type = ErrorType.NOT_FOUND


class ConversationNotFound(NotFoundError):
    """Conversation id unknown to the caller."""

    def __init__(self, conversation_id: str):
        super().__init__(
            "Conversation not found",
            {"conversation_id": conversation_id},
        )


class MessageNotFound(NotFoundError):
    """Message id absent from the conversation."""

    def __init__(self, conversation_id: str, message_id: str):
        super().__init__(
            "Message not found",
            {"conversation_id": conversation_id, "message_id": message_id},
        )


class UnauthorizedError(ChatError):
    """Missing or invalid caller identity."""

    status_code = 401
    error_type = ErrorType.UNAUTHORIZED


class ValidationFailure(ChatError):
    """Request rejected before any side effect took place."""

    status_code = 400
    error_type = ErrorType.VALIDATION


class UpstreamFailure(ChatError):
    """An external collaborator failed or was unreachable."""

    status_code = 502
    error_type = ErrorType.UPSTREAM


class CompletionError(UpstreamFailure):
    """Completion provider failed, or its stream was interrupted."""


class MemoryServiceError(UpstreamFailure):
    """Long-term memory service failed."""
