"""Provider implementation for OpenAI compatible chat completion endpoints."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from openai import AsyncOpenAI

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

_DEF_BASE_URL = "https://api.openai.com/v1"


def adapt_openai_chunk(chunk: Any) -> StreamEvent | None:
    """Map a chat completion chunk to a unified event."""

    choices = field_of(chunk, "choices") or []
    if choices:
        delta = field_of(choices[0], "delta")
        content = field_of(delta, "content") if delta is not None else None
        if content:
            return ContentEvent(content)

    usage = field_of(chunk, "usage")
    if usage:
        return UsageEvent(
            output_tokens=field_of(usage, "completion_tokens") or 0,
            input_tokens=field_of(usage, "prompt_tokens") or 0,
        )
    return None


class OpenAIProvider(BaseProvider):
    """Supports OpenAI, OpenRouter and other OpenAI compatible APIs."""

    id = "openai-compatible"
    name = "OpenAI Compatible"

    def _create_client(self) -> AsyncOpenAI:
        client_kwargs: dict[str, Any] = {
            "api_key": self.settings.api_key,
            "base_url": self.settings.base_url or _DEF_BASE_URL,
        }
        if self.settings.timeout:
            client_kwargs["timeout"] = float(self.settings.timeout)
        if self.settings.http_client is not None:
            client_kwargs["http_client"] = self.settings.http_client
        return AsyncOpenAI(**client_kwargs)

    async def send_message(self, request: ChatRequest) -> ChatResponse:
        client = self._ensure_client()
        try:
            response = await client.chat.completions.create(**_build_payload(request))
        except Exception as exc:  # noqa: BLE001 - normalise to provider error
            raise self._wrap_exception(exc) from exc
        return _convert_response(response)

    def stream_message(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        client = self._ensure_client()
        payload = _build_payload(request)

        def open_stream() -> Any:
            return client.chat.completions.create(
                stream=True,
                stream_options={"include_usage": True},
                **payload,
            )

        return self._stream(open_stream, adapt_openai_chunk)


def _build_payload(request: ChatRequest) -> dict[str, Any]:
    # The system prompt travels as the first message.
    messages: list[dict[str, str]] = []
    if request.system_prompt:
        messages.append({"role": "system", "content": request.system_prompt})
    messages.extend(request.messages())
    return {
        "model": request.model,
        "messages": messages,
        "max_tokens": request.max_tokens,
        "temperature": request.temperature,
    }


def _convert_response(response: Any) -> ChatResponse:
    choices = field_of(response, "choices") or []
    choice = choices[0] if choices else None
    message = field_of(choice, "message") if choice is not None else None
    text = (field_of(message, "content") if message is not None else None) or ""

    usage = field_of(response, "usage")
    return ChatResponse(
        segments=(TextSegment(text),),
        usage=UsageEvent(
            output_tokens=field_of(usage, "completion_tokens", 0) or 0,
            input_tokens=field_of(usage, "prompt_tokens", 0) or 0,
        ),
        metadata={
            "model": field_of(response, "model"),
            "finish_reason": field_of(choice, "finish_reason") if choice is not None else None,
            "created": field_of(response, "created"),
        },
    )
