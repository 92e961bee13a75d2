"""Bounded context window for completion requests.

The cutoff is by message count, not tokens: system messages are always kept
and only the most recent non-system messages survive.
"""

import logging
from typing import Protocol, Sequence, TypeVar

logger = logging.getLogger(__name__)


class HasRole(Protocol):
    role: str


M = TypeVar("M", bound=HasRole)


def trim(messages: Sequence[M], max_messages: int) -> list[M]:
    """Trim a message sequence to at most ``max_messages`` non-system messages.

    Sequences within bound are returned unchanged. Otherwise every system
    message is retained along with the newest ``max_messages`` non-system
    messages; kept messages stay in their original relative order.

    Args:
        messages: Ordered messages, each with a ``role``
        max_messages: Number of non-system messages to keep

    Returns:
        The trimmed sequence
    """
    if len(messages) <= max_messages:
        return list(messages)

    non_system = [index for index, message in enumerate(messages) if message.role != "system"]
    keep = set(non_system[-max_messages:]) if max_messages > 0 else set()

    trimmed = [
        message for index, message in enumerate(messages)
        if message.role == "system" or index in keep
    ]

    logger.debug(f"Context window managed: {len(messages)} -> {len(trimmed)} messages")
    return trimmed
