"""Factory for creating completion providers."""

from enum import Enum

from ..config import Settings, settings as default_settings
from ..errors import CompletionError
from .base import CompletionProvider, GenerationOptions
from .openai_provider import OpenAICompatibleProvider


class ProviderType(str, Enum):
    """Supported completion provider types."""

    GROQ = "groq"
    OPENAI = "openai"


class CompletionProviderFactory:
    """Factory for creating completion providers."""

    @staticmethod
    def create_provider(
        provider_type: ProviderType,
        config: Settings | None = None,
    ) -> CompletionProvider:
        """Create a completion provider instance.

        Args:
            provider_type: Type of provider to create
            config: Settings to read credentials from

        Returns:
            Completion provider instance

        Raises:
            CompletionError: If the provider is not configured
        """
        config = config or default_settings

        if provider_type == ProviderType.GROQ:
            if not config.groq_api_key:
                raise CompletionError(
                    "Groq API key required but not configured. "
                    "Set GROQ_API_KEY environment variable."
                )
            return OpenAICompatibleProvider(
                api_key=config.groq_api_key,
                base_url=config.groq_base_url,
                name="groq",
            )

        elif provider_type == ProviderType.OPENAI:
            if not config.openai_api_key:
                raise CompletionError(
                    "OpenAI API key required but not configured. "
                    "Set OPENAI_API_KEY environment variable."
                )
            return OpenAICompatibleProvider(api_key=config.openai_api_key, name="openai")

        else:
            raise CompletionError(f"Unsupported provider type: {provider_type}")


def get_completion_provider(
    provider_type: ProviderType | None = None,
    config: Settings | None = None,
) -> CompletionProvider:
    """Get a completion provider, defaulting to the configured backend."""
    config = config or default_settings
    return CompletionProviderFactory.create_provider(
        provider_type or ProviderType(config.completion_provider),
        config,
    )


def default_generation_options(config: Settings | None = None) -> GenerationOptions:
    """Generation options derived from settings."""
    config = config or default_settings
    return GenerationOptions(
        model=config.completion_model,
        temperature=config.completion_temperature,
        max_tokens=config.completion_max_tokens,
    )
