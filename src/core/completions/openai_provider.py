"""OpenAI-compatible streaming completion provider (OpenAI, Groq)."""

import logging
from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from ..domain.chat import TextPart
from ..errors import CompletionError
from .base import (
    CompletionDelta,
    CompletionEvent,
    CompletionProvider,
    CompletionResult,
    GenerationOptions,
    ImageContent,
    ModelMessage,
)

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(CompletionProvider):
    """Completion provider for any OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        name: str = "openai",
        client: AsyncOpenAI | None = None,
    ):
        """Initialize the provider.

        Args:
            api_key: API key for the backend
            base_url: Optional API base URL (e.g. Groq's OpenAI endpoint)
            name: Provider name used in logs
            client: Pre-built client, mainly for tests
        """
        self._name = name
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    @property
    def provider_name(self) -> str:
        return self._name

    async def close(self) -> None:
        await self.client.close()

    def _to_wire(self, message: ModelMessage) -> dict[str, Any]:
        """Translate a model message into the chat completions wire format."""
        if isinstance(message.content, str):
            return {"role": message.role, "content": message.content}

        content = []
        for item in message.content:
            if isinstance(item, ImageContent):
                content.append({"type": "image_url", "image_url": {"url": item.image}})
            else:
                content.append({"type": "text", "text": item.text})
        return {"role": message.role, "content": content}

    async def stream(
        self,
        messages: list[ModelMessage],
        options: GenerationOptions,
    ) -> AsyncIterator[CompletionEvent]:
        """Stream a chat completion, yielding text deltas then the final result."""
        request: dict[str, Any] = {
            "model": options.model,
            "messages": [self._to_wire(message) for message in messages],
            "temperature": options.temperature,
            "stream": True,
        }
        if options.max_tokens is not None:
            request["max_tokens"] = options.max_tokens

        chunks: list[str] = []
        finish_reason: str | None = None

        try:
            response = await self.client.chat.completions.create(**request)
            async for chunk in response:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                text = choice.delta.content if choice.delta else None
                if text:
                    chunks.append(text)
                    yield CompletionDelta(text=text)
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except OpenAIError as e:
            logger.error(f"{self._name} completion failed: {e}")
            raise CompletionError(
                "Completion provider request failed",
                {"provider": self._name, "reason": str(e)},
            ) from e

        if finish_reason is None:
            raise CompletionError(
                "Completion stream ended before completion",
                {"provider": self._name},
            )

        yield CompletionResult(
            parts=[TextPart(text="".join(chunks))],
            finish_reason=finish_reason,
        )
