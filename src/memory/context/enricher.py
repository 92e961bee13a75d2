"""Prompt Enricher: folds long-term memory into the system prompt.

Builds the system message sent ahead of each completion request from:
- Relevant context: memories semantically closest to the latest user query
- User preferences: heuristically categorized preference memories
- Known facts: heuristically categorized fact memories
"""

import asyncio
import logging
import uuid
from datetime import datetime

from ...core.config import Settings, settings as default_settings
from ...core.domain.memory import CategorizedMemories
from ..adapter import MemoryStoreAdapter

logger = logging.getLogger(__name__)

RELEVANT_HEADING = "Relevant context from previous conversations:"
PREFERENCES_HEADING = "User preferences:"
FACTS_HEADING = "Known facts about user:"
MEMORY_USAGE_INSTRUCTION = (
    "Please use this context to provide more personalized and relevant responses. "
    "Reference past conversations naturally when appropriate, but don't mention "
    "that you're using stored memory unless specifically asked."
)


class PromptEnricher:
    """Memory-aware system prompt builder that never fails a turn."""

    def __init__(self, adapter: MemoryStoreAdapter | None, config: Settings | None = None):
        """Initialize the enricher.

        Args:
            adapter: Memory Store Adapter, or None when memory is disabled
            config: Settings providing limits and timeouts
        """
        self.adapter = adapter
        self.config = config or default_settings

    async def build_system_prompt(
        self,
        base_prompt: str,
        user_id: str,
        query: str | None = None,
    ) -> str:
        """Compose the system prompt for one completion request.

        Returns ``base_prompt`` unchanged when memory is disabled, when
        nothing is known about the user, or when retrieval fails or times out.
        """
        if self.adapter is None:
            return base_prompt

        request_id = uuid.uuid4().hex[:8]
        start_time = datetime.now()

        try:
            relevant, categorized = await asyncio.wait_for(
                asyncio.gather(
                    self._relevant(user_id, query),
                    self.adapter.retrieve_all(user_id),
                ),
                timeout=self.config.memory_retrieval_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[CTX-{request_id}] Memory retrieval timed out, using base prompt")
            return base_prompt
        except Exception as e:
            logger.error(f"[CTX-{request_id}] Memory retrieval failed, using base prompt: {e}")
            return base_prompt

        sections = self._build_sections(relevant, categorized)
        if not sections:
            return base_prompt

        prompt = "\n\n".join([base_prompt, *sections, MEMORY_USAGE_INSTRUCTION])

        elapsed = (datetime.now() - start_time).total_seconds() * 1000
        logger.debug(
            f"[CTX-{request_id}] Enriched system prompt for user {user_id}: "
            f"{len(prompt)} characters ({elapsed:.2f}ms)"
        )
        return prompt

    async def _relevant(self, user_id: str, query: str | None) -> list[str]:
        if not query or not query.strip():
            return []
        return await self.adapter.retrieve_relevant(
            user_id, query, limit=self.config.memory_relevant_limit
        )

    def _build_sections(
        self,
        relevant: list[str],
        categorized: CategorizedMemories,
    ) -> list[str]:
        limit = self.config.memory_section_limit
        sections = []

        if relevant:
            lines = [f"{index}. {memory}" for index, memory in enumerate(relevant, start=1)]
            sections.append("\n".join([RELEVANT_HEADING, *lines]))

        if categorized.preferences:
            lines = [f"- {memory}" for memory in categorized.preferences[:limit]]
            sections.append("\n".join([PREFERENCES_HEADING, *lines]))

        if categorized.facts:
            lines = [f"- {memory}" for memory in categorized.facts[:limit]]
            sections.append("\n".join([FACTS_HEADING, *lines]))

        return sections
