"""Schema definitions for memory commit queue messages."""

from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import json
import uuid

from ...core.domain.chat import Message, utc_now


@dataclass
class MemoryCommitJob:
    """One finished exchange waiting to be committed to long-term memory."""

    # Core identifiers
    job_id: str
    user_id: str
    conversation_id: Optional[str]

    # Exchange data, as wire-form message dicts
    messages: List[Dict[str, Any]] = field(default_factory=list)

    # Retry logic
    retry_count: int = 0
    max_retries: int = 3
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = utc_now()

    @classmethod
    def from_exchange(
        cls,
        user_id: str,
        messages: List[Message],
        conversation_id: Optional[str] = None,
        max_retries: int = 3,
    ) -> 'MemoryCommitJob':
        """Create a commit job from the messages of one turn."""
        return cls(
            job_id=str(uuid.uuid4()),
            user_id=user_id,
            conversation_id=conversation_id,
            messages=[
                message.model_dump(mode="json", by_alias=True, exclude={"attachments"})
                for message in messages
            ],
            max_retries=max_retries,
        )

    def exchange(self) -> List[Message]:
        """Rebuild the exchange's messages."""
        return [Message.model_validate(data) for data in self.messages]

    def to_json(self) -> str:
        """Serialize to JSON for queue transmission."""
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, json_str: str) -> 'MemoryCommitJob':
        """Deserialize from JSON."""
        data = json.loads(json_str)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        return cls(**data)

    def should_retry(self) -> bool:
        """Check if job should be retried on failure."""
        return self.retry_count < self.max_retries

    def increment_retry(self) -> 'MemoryCommitJob':
        """Bump the retry count in place."""
        self.retry_count += 1
        return self
