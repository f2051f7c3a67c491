"""Provider implementation backed by the official Anthropic Python SDK."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from anthropic import AsyncAnthropic

from cao.chat.errors import CaoProviderError
from cao.chat.models import (
    ChatRequest,
    ChatResponse,
    ContentEvent,
    StreamEvent,
    TextSegment,
    UsageEvent,
)

from .base import BaseProvider, field_of

logger = logging.getLogger(__name__)


def adapt_anthropic_event(event: Any) -> StreamEvent | None:
    """Map a raw Messages API stream event to a unified event."""

    event_type = field_of(event, "type")
    if event_type == "content_block_delta":
        text = field_of(field_of(event, "delta"), "text")
        if text:
            return ContentEvent(text)
        return None
    if event_type == "message_delta":
        usage = field_of(event, "usage")
        if usage:
            return UsageEvent(output_tokens=field_of(usage, "output_tokens") or 0)
        return None
    if event_type == "error":
        error = field_of(event, "error")
        message = field_of(error, "message") or "Anthropic stream reported an error."
        raise CaoProviderError(message)
    return None


class AnthropicProvider(BaseProvider):
    """Anthropic Claude provider."""

    id = "anthropic"
    name = "Anthropic"

    def _create_client(self) -> AsyncAnthropic:
        client_kwargs: dict[str, Any] = {"api_key": self.settings.api_key}
        if self.settings.base_url:
            client_kwargs["base_url"] = self.settings.base_url
        if self.settings.timeout:
            client_kwargs["timeout"] = float(self.settings.timeout)
        if self.settings.http_client is not None:
            client_kwargs["http_client"] = self.settings.http_client
        return AsyncAnthropic(**client_kwargs)

    async def send_message(self, request: ChatRequest) -> ChatResponse:
        client = self._ensure_client()
        try:
            response = await client.messages.create(**_build_payload(request))
        except Exception as exc:  # noqa: BLE001 - normalise to provider error
            raise self._wrap_exception(exc) from exc
        return _convert_response(response)

    def stream_message(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        client = self._ensure_client()
        payload = _build_payload(request)

        def open_stream() -> Any:
            return client.messages.create(stream=True, **payload)

        return self._stream(open_stream, adapt_anthropic_event)


def _build_payload(request: ChatRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": request.model,
        "max_tokens": request.max_tokens,
        "temperature": request.temperature,
        "messages": request.messages(),
    }
    # Anthropic takes the system prompt as a separate parameter.
    if request.system_prompt:
        payload["system"] = request.system_prompt
    return payload


def _convert_response(response: Any) -> ChatResponse:
    content = field_of(response, "content")
    if isinstance(content, str):
        segments = (TextSegment(content),)
    elif content:
        segments = tuple(
            TextSegment(field_of(block, "text") or "")
            for block in content
            if field_of(block, "type") == "text"
        )
    else:
        segments = (TextSegment(""),)

    usage = field_of(response, "usage")
    return ChatResponse(
        segments=segments,
        usage=UsageEvent(
            output_tokens=field_of(usage, "output_tokens", 0) or 0,
            input_tokens=field_of(usage, "input_tokens", 0) or 0,
        ),
        metadata={
            "model": field_of(response, "model"),
            "stop_reason": field_of(response, "stop_reason"),
        },
    )
