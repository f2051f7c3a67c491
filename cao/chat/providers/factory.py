"""Provider factory helpers for chat completions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Mapping

from cao.chat.errors import CaoConfigError

from .anthropic_sdk import AnthropicProvider
from .base import BaseProvider, ProviderSettings
from .openai_compatible import OpenAIProvider

if TYPE_CHECKING:  # pragma: no cover - typing only
    import httpx
    from cao.chat.config import ChatConfig

logger = logging.getLogger(__name__)


_PROVIDER_REGISTRY: Mapping[str, Callable[[ProviderSettings], BaseProvider]] = {
    "anthropic": AnthropicProvider,
    "claude": AnthropicProvider,
    "openai": OpenAIProvider,
    "openai-compatible": OpenAIProvider,
    "openai_compatible": OpenAIProvider,
}


def create_provider(provider_id: str, settings: ProviderSettings) -> BaseProvider:
    """Instantiate a provider by identifier using the registered factories."""

    normalised = (provider_id or "anthropic").strip().lower()
    try:
        factory = _PROVIDER_REGISTRY[normalised]
    except KeyError as exc:
        raise CaoConfigError(f"Unsupported provider '{provider_id}'.") from exc

    provider = factory(settings)
    logger.debug("Created chat provider '%s' for model '%s'", normalised, settings.model)
    return provider


def provider_from_config(
    config: "ChatConfig",
    *,
    http_client: "httpx.AsyncClient" | None = None,
) -> BaseProvider:
    """Create a provider instance based on a :class:`ChatConfig` object."""

    settings = config.build_provider_settings(http_client=http_client)
    return create_provider(config.provider, settings)
