"""Chat service gluing transcript parsing, providers and reply rendering."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from cao.chat.config import ChatConfig, ChatRequestSettings
from cao.chat.errors import CaoApiError, CaoConfigError
from cao.chat.models import ChatRequest, Turn
from cao.chat.formats import format_user_section
from cao.chat.parser import ChatValidation, validate_chat
from cao.chat.providers.factory import provider_from_config
from cao.chat.references import DocumentStore, ReferenceResolver
from cao.chat.response import ResponseWriter, TextSink
from cao.chat.templates import expand_template

if TYPE_CHECKING:  # pragma: no cover - typing only
    import httpx
    from cao.chat.providers.base import BaseProvider

logger = logging.getLogger(__name__)

__all__ = ["ChatService"]


class ChatService:
    """Runs the "get response" flow for one chat document at a time."""

    def __init__(
        self,
        config: ChatConfig,
        *,
        http_client: "httpx.AsyncClient" | None = None,
    ) -> None:
        self._config = config
        self._http_client = http_client
        self._provider: BaseProvider | None = None

    @property
    def config(self) -> ChatConfig:
        return self._config

    def update_config(self, config: ChatConfig) -> None:
        """Swap settings; the provider is rebuilt on next use."""

        self._config = config
        self._provider = None

    def has_provider(self) -> bool:
        try:
            self._ensure_provider()
        except CaoConfigError as exc:
            logger.debug("No chat provider available: %s", exc)
            return False
        return True

    def provider_name(self) -> str | None:
        try:
            provider = self._ensure_provider()
        except CaoConfigError:
            return None
        return provider.name

    def _ensure_provider(self) -> "BaseProvider":
        if self._provider is None:
            self._provider = provider_from_config(self._config, http_client=self._http_client)
        return self._provider

    def prepare(self, text: str, store: DocumentStore) -> ChatValidation:
        """Validate the document and parse it into turns."""

        return validate_chat(text, self._config.surface_format, ReferenceResolver(store))

    def build_request(
        self,
        turns: Sequence[Turn],
        frontmatter: Mapping[str, Any] | None = None,
    ) -> ChatRequest:
        settings = ChatRequestSettings.from_config(self._config, frontmatter)
        return ChatRequest(
            turns=list(turns),
            model=settings.model,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            system_prompt=settings.system_prompt,
        )

    async def respond(
        self,
        text: str,
        sink: TextSink,
        store: DocumentStore,
        *,
        frontmatter: Mapping[str, Any] | None = None,
    ) -> ChatValidation:
        """Validate ``text``, request a completion and append the reply to ``sink``.

        Structural problems are returned in the validation result and nothing is
        written. Provider failures raise :class:`CaoProviderError`.
        """

        validation = self.prepare(text, store)
        turns = validation.turns
        if not validation.is_valid or turns is None:
            return validation

        try:
            provider = self._ensure_provider()
        except CaoConfigError as exc:
            raise CaoApiError(str(exc)) from exc

        request = self.build_request(turns, frontmatter)
        writer = ResponseWriter(sink, self._config.surface_format, show_stats=self._config.show_stats)

        if self._config.streaming_response:
            await writer.write_stream(provider.stream_message(request))
        else:
            writer.write_response(await provider.send_message(request))
        return validation

    def new_chat(self, now: datetime | None = None) -> tuple[str, str]:
        """Return the path and opening text of a new chat note."""

        path = self._config.new_chat_path(now)
        logger.debug("New chat note at %s", path)
        return path, format_user_section(self._config.surface_format, new_file=True)

    def prompt_names(self) -> list[str]:
        return [prompt.name for prompt in self._config.custom_prompts]

    def insert_prompt(self, name: str) -> tuple[str, int]:
        """Return the text of the named prompt and the cursor offset inside it."""

        prompt = self._config.find_prompt(name)
        if prompt is None:
            raise CaoApiError(f"Unknown prompt template '{name}'.")
        return expand_template(prompt)

    async def close(self) -> None:
        if self._provider is not None:
            await self._provider.close()
            self._provider = None
