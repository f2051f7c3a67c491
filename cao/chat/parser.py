"""Recover conversation turns from a chat transcript."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import MutableSet, Protocol

from cao.chat.formats import (
    FormatValidation,
    ValidationError,
    ValidationErrorKind,
    classify_line,
    strip_quote,
    validate,
)
from cao.chat.models import Role, SurfaceFormat, Turn

logger = logging.getLogger(__name__)

__all__ = ["ChatValidation", "QueryExpander", "parse", "validate_chat"]


class QueryExpander(Protocol):
    """Anything able to inline reference context into a query."""

    def expand(self, raw_text: str, processed: MutableSet[str]) -> str:  # pragma: no cover - typing aid
        ...


@dataclass
class _OpenTurn:
    role: Role
    quoted: bool


def parse(text: str, resolver: QueryExpander) -> list[Turn] | None:
    """Split ``text`` into alternating turns, or return ``None`` if they do not alternate.

    Content flushed by an assistant marker, and the content left at the end of
    the document, are read as queries and go through ``resolver.expand``.
    Content flushed by a user marker is stored as plain trimmed text. Lines
    before the first marker are ignored.
    """

    turns: list[Turn] = []
    processed: set[str] = set()
    current: _OpenTurn | None = None
    buffer: list[str] = []

    def flush(expand: bool) -> None:
        if current is None:
            return
        lines = [strip_quote(line) for line in buffer] if current.quoted else buffer
        source = "\n".join(lines).strip()
        content = resolver.expand(source, processed) if expand else source
        turns.append(Turn.from_text(current.role, content, source=source))

    for line in text.split("\n"):
        marker = classify_line(line)
        if marker is None:
            buffer.append(line)
            continue

        flush(expand=marker.role is Role.ASSISTANT)
        current = _OpenTurn(role=marker.role, quoted=marker.format is SurfaceFormat.CALLOUTS)
        buffer = []

    flush(expand=True)

    for index, turn in enumerate(turns):
        expected = Role.USER if index % 2 == 0 else Role.ASSISTANT
        if turn.role is not expected:
            logger.debug("Turn %d is %s, expected %s", index, turn.role.value, expected.value)
            return None

    logger.debug("Parsed %d chat turns", len(turns))
    return turns


@dataclass(frozen=True)
class ChatValidation:
    """Outcome of validating and parsing a transcript before a request."""

    turns: list[Turn] | None = None
    format: SurfaceFormat | None = None
    error: ValidationError | None = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


def validate_chat(text: str, expected: SurfaceFormat, resolver: QueryExpander) -> ChatValidation:
    """Validate ``text`` and, when it is well formed, parse it into turns."""

    checked: FormatValidation = validate(text, expected)
    if checked.error is not None:
        return ChatValidation(error=checked.error)

    turns = parse(text, resolver)
    if turns is None:
        return ChatValidation(
            format=checked.format,
            error=ValidationError(
                ValidationErrorKind.ALTERNATION,
                "Chat messages must alternate between you and the assistant, starting with you.",
            ),
        )
    return ChatValidation(turns=turns, format=checked.format)
