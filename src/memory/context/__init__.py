"""Memory-aware system prompt composition."""

from .enricher import PromptEnricher

__all__ = ["PromptEnricher"]
