"""Append completion output to the chat document."""

from __future__ import annotations

import logging
from typing import AsyncIterable, Protocol

from cao.chat.errors import CaoProviderError
from cao.chat.formats import (
    QUOTE_PREFIX,
    format_assistant_section,
    format_user_section,
    quote_block,
)
from cao.chat.models import (
    ChatResponse,
    ContentEvent,
    ErrorEvent,
    StreamEvent,
    SurfaceFormat,
    UsageEvent,
)
from cao.chat.transducer import transform

logger = logging.getLogger(__name__)

__all__ = ["TextSink", "ResponseWriter"]


class TextSink(Protocol):
    """Append-only view of the host editor."""

    def append(self, text: str) -> None:  # pragma: no cover - typing aid
        ...

    def move_cursor_to_end(self) -> None:  # pragma: no cover - typing aid
        ...


class ResponseWriter:
    """Writes one assistant reply, then opens the next user turn."""

    def __init__(self, sink: TextSink, fmt: SurfaceFormat, *, show_stats: bool = True) -> None:
        if fmt not in (SurfaceFormat.HEADERS, SurfaceFormat.CALLOUTS):
            raise ValueError(f"Cannot write replies in '{fmt.value}' format.")
        self._sink = sink
        self._format = fmt
        self._show_stats = show_stats

    @property
    def quoted(self) -> bool:
        return self._format is SurfaceFormat.CALLOUTS

    async def write_stream(self, events: AsyncIterable[StreamEvent]) -> int:
        """Render unified stream events as they arrive and return the output token count.

        An :class:`ErrorEvent` stops rendering and is raised as
        :class:`CaoProviderError`; the text written so far stays in the document.
        """

        self._sink.append(format_assistant_section(self._format))
        try:
            token_count = await self._render(events)
        finally:
            closer = getattr(events, "aclose", None)
            if callable(closer):
                await closer()

        self._finish(token_count)
        return token_count

    async def _render(self, events: AsyncIterable[StreamEvent]) -> int:
        at_line_start = True
        token_count = 0
        async for event in events:
            if isinstance(event, ContentEvent):
                if not event.text:
                    continue
                if self.quoted:
                    chunk, at_line_start = transform(event.text, at_line_start)
                else:
                    chunk = event.text
                self._sink.append(chunk)
            elif isinstance(event, UsageEvent):
                token_count = event.output_tokens
            elif isinstance(event, ErrorEvent):
                cause = event.cause
                if isinstance(cause, CaoProviderError):
                    raise cause
                raise CaoProviderError(event.message) from cause
        return token_count

    def write_response(self, response: ChatResponse) -> int:
        """Render a complete reply and return its output token count."""

        text = response.text
        if self.quoted:
            text = quote_block(text)
        self._sink.append(format_assistant_section(self._format) + text)
        token_count = response.usage.output_tokens
        self._finish(token_count)
        return token_count

    def _finish(self, token_count: int) -> None:
        if self._show_stats:
            prefix = "\n" + QUOTE_PREFIX if self.quoted else "\n"
            self._sink.append(f"{prefix}({token_count} tokens)")
        self._sink.append(format_user_section(self._format))
        self._sink.move_cursor_to_end()
        logger.debug("Reply written (%d output tokens)", token_count)
