"""Long-term memory for the chat service.

Exchanges are committed to an external semantic memory service (mem0) after
each turn and recalled into the system prompt of later turns:
- MemoryBackend / Mem0Client - raw access to the memory service
- MemoryStoreAdapter - best-effort store, retrieve, categorize and prune
- MemoryCommitScheduler - fire-and-forget commits, in process or via RabbitMQ
"""

from .adapter import MemoryStoreAdapter, build_transcript
from .base import MemoryBackend
from .categorizer import categorize, categorize_all

__all__ = [
    "MemoryBackend",
    "MemoryStoreAdapter",
    "build_transcript",
    "categorize",
    "categorize_all",
]
