"""Completion backends for chat transcripts."""

from .anthropic_sdk import AnthropicProvider, adapt_anthropic_event
from .base import BaseProvider, EventAdapter, ProviderSettings, normalize_stream
from .factory import create_provider, provider_from_config
from .openai_compatible import OpenAIProvider, adapt_openai_chunk

__all__ = [
    "ProviderSettings",
    "BaseProvider",
    "EventAdapter",
    "normalize_stream",
    "AnthropicProvider",
    "OpenAIProvider",
    "adapt_anthropic_event",
    "adapt_openai_chunk",
    "create_provider",
    "provider_from_config",
]
