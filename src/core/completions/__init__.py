"""Completion providers for the chat service."""

from .base import (
    CompletionDelta,
    CompletionEvent,
    CompletionProvider,
    CompletionResult,
    GenerationOptions,
    ModelMessage,
    to_model_message,
    to_model_messages,
)
from .provider_factory import (
    ProviderType,
    default_generation_options,
    get_completion_provider,
)

__all__ = [
    "CompletionDelta",
    "CompletionEvent",
    "CompletionProvider",
    "CompletionResult",
    "GenerationOptions",
    "ModelMessage",
    "ProviderType",
    "default_generation_options",
    "get_completion_provider",
    "to_model_message",
    "to_model_messages",
]
