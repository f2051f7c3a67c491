"""Data transfer objects shared across the chat domain layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Sequence, Union

__all__ = [
    "Role",
    "SurfaceFormat",
    "TextSegment",
    "ContentSegment",
    "Turn",
    "ContentEvent",
    "UsageEvent",
    "ErrorEvent",
    "DoneEvent",
    "StreamEvent",
    "ChatRequest",
    "ChatResponse",
]


class Role(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class SurfaceFormat(str, Enum):
    """Marker convention used to delimit turns in a document."""

    HEADERS = "headers"
    CALLOUTS = "callouts"
    MIXED = "mixed"
    EMPTY = "empty"


@dataclass(frozen=True)
class TextSegment:
    """Plain text content of a turn."""

    kind: ClassVar[str] = "text"

    text: str


# New segment kinds join this union; consumers skip kinds they do not handle.
ContentSegment = Union[TextSegment]


@dataclass(frozen=True)
class Turn:
    """One role-tagged unit of conversation recovered from a transcript."""

    role: Role
    segments: tuple[ContentSegment, ...] = ()
    source: str = ""

    @classmethod
    def from_text(cls, role: Role, text: str, *, source: str | None = None) -> "Turn":
        """Build a turn carrying a single text segment."""

        return cls(
            role=role,
            segments=(TextSegment(text),),
            source=text if source is None else source,
        )

    @property
    def text(self) -> str:
        """Return the concatenated text of every text segment."""

        return "".join(segment.text for segment in self.segments if segment.kind == "text")

    def as_message(self) -> dict[str, str]:
        """Expose the turn as a provider-neutral chat message."""

        return {"role": self.role.value, "content": self.text}


@dataclass(frozen=True)
class ContentEvent:
    """A text increment of a streaming completion."""

    text: str


@dataclass(frozen=True)
class UsageEvent:
    """Token metering reported by the backend."""

    output_tokens: int
    input_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class ErrorEvent:
    """Terminal failure of a stream; replaces :class:`DoneEvent`."""

    cause: BaseException

    @property
    def message(self) -> str:
        return str(self.cause) or self.cause.__class__.__name__


@dataclass(frozen=True)
class DoneEvent:
    """Terminal marker of a successful stream."""


StreamEvent = Union[ContentEvent, UsageEvent, ErrorEvent, DoneEvent]


@dataclass
class ChatRequest:
    """Backend-neutral completion request built from parsed turns."""

    turns: Sequence[Turn]
    model: str
    max_tokens: int
    temperature: float
    system_prompt: str = ""

    def messages(self) -> list[dict[str, str]]:
        """Return the user/assistant messages in conversation order."""

        return [turn.as_message() for turn in self.turns]


@dataclass
class ChatResponse:
    """Outcome of a single-shot completion request."""

    segments: tuple[ContentSegment, ...]
    usage: UsageEvent
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return "".join(segment.text for segment in self.segments if segment.kind == "text")
