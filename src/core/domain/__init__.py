"""Domain models for the chat service.

This module contains the core data structures shared by the message store,
the memory adapter and the conversation orchestrator.
"""

# Conversation models - durable chat state
from .chat import (
    DEFAULT_TITLE,
    AppendResult,
    Attachment,
    Conversation,
    ConversationSummary,
    FilePart,
    Message,
    Part,
    TextPart,
    derive_title,
)

# Memory models - long-term memory entries and views
from .memory import (
    CategorizedMemories,
    MemoryCategory,
    MemoryRecord,
    MemoryStats,
)

# State models - per-turn phase tracking
from .state import TurnPhase, TurnState

__all__ = [
    # Conversation models
    "DEFAULT_TITLE",
    "AppendResult",
    "Attachment",
    "Conversation",
    "ConversationSummary",
    "FilePart",
    "Message",
    "Part",
    "TextPart",
    "derive_title",

    # Memory models
    "CategorizedMemories",
    "MemoryCategory",
    "MemoryRecord",
    "MemoryStats",

    # State models
    "TurnPhase",
    "TurnState",
]
