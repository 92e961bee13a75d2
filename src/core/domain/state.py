"""Turn state tracking for the conversation orchestrator.

A turn moves through a fixed sequence of phases; any error before the
assistant message is persisted parks it in ``failed``.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .chat import utc_now


class TurnPhase(str, Enum):
    """Phases of a single conversation turn."""

    IDLE = "idle"
    AWAITING_USER_PERSIST = "awaiting_user_persist"
    AWAITING_COMPLETION = "awaiting_completion"
    AWAITING_ASSISTANT_PERSIST = "awaiting_assistant_persist"
    FAILED = "failed"


class TurnState(BaseModel):
    """Observable state of one turn as it moves through the orchestrator."""

    conversation_id: str = Field(..., description="Conversation the turn belongs to")
    owner_id: str = Field(..., description="User driving the turn")

    phase: TurnPhase = Field(default=TurnPhase.IDLE)
    previous_phase: TurnPhase | None = Field(None)

    user_message_id: str | None = Field(None, description="Durable id of the user turn")
    assistant_message_id: str | None = Field(
        None,
        description="Durable id of the persisted assistant turn",
    )
    memory_scheduled: bool = Field(default=False)

    error: str | None = Field(None, description="Error that failed the turn")
    started_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def completed(self) -> bool:
        return self.phase == TurnPhase.IDLE and self.assistant_message_id is not None

    def transition_to(self, new_phase: TurnPhase) -> None:
        """Move to a new phase, remembering the previous one."""
        self.previous_phase = self.phase
        self.phase = new_phase
        self.updated_at = utc_now()

    def fail(self, error: str) -> None:
        """Park the turn in the terminal failed phase."""
        self.transition_to(TurnPhase.FAILED)
        self.error = error
