"""Incremental quotation of streamed text for callout-formatted chats."""

from __future__ import annotations

from cao.chat.formats import QUOTE_PREFIX

__all__ = ["QUOTE_PREFIX", "LINE_TERMINATOR", "transform"]

LINE_TERMINATOR = "\n"


def transform(chunk: str, at_line_start: bool) -> tuple[str, bool]:
    """Prefix every line started within ``chunk`` with the quotation marker.

    ``at_line_start`` is the state carried between calls: ``True`` when the
    previous character emitted was a line terminator, or before the first
    chunk of a session. The returned state is passed to the next call, which
    makes the output independent of how the stream was split into chunks.
    """

    if not chunk:
        return chunk, at_line_start

    parts: list[str] = []
    for char in chunk:
        if at_line_start:
            parts.append(QUOTE_PREFIX)
        parts.append(char)
        at_line_start = char == LINE_TERMINATOR
    return "".join(parts), at_line_start
