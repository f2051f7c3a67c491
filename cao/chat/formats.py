"""Surface format detection, validation and rendering for chat transcripts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, NamedTuple

from cao.chat.models import Role, SurfaceFormat, Turn

logger = logging.getLogger(__name__)

__all__ = [
    "HEADER_USER_PREFIX",
    "HEADER_AI_PREFIX",
    "CALLOUT_USER_PREFIX",
    "CALLOUT_AI_PREFIX",
    "QUOTE_PREFIX",
    "LineMarker",
    "ValidationErrorKind",
    "ValidationError",
    "FormatValidation",
    "classify_line",
    "detect",
    "validate",
    "strip_quote",
    "quote_block",
    "format_user_section",
    "format_assistant_section",
    "render_transcript",
]

HEADER_USER_PREFIX = "### Me"
HEADER_AI_PREFIX = "### CAO"
CALLOUT_USER_PREFIX = "> [!question]+ Me"
CALLOUT_AI_PREFIX = "> [!success]+ CAO"
QUOTE_PREFIX = "> "


class LineMarker(NamedTuple):
    """A turn opener: which surface format it belongs to and which role it opens."""

    format: SurfaceFormat
    role: Role
    prefix: str


_MARKERS: tuple[LineMarker, ...] = (
    LineMarker(SurfaceFormat.HEADERS, Role.USER, HEADER_USER_PREFIX),
    LineMarker(SurfaceFormat.HEADERS, Role.ASSISTANT, HEADER_AI_PREFIX),
    LineMarker(SurfaceFormat.CALLOUTS, Role.USER, CALLOUT_USER_PREFIX),
    LineMarker(SurfaceFormat.CALLOUTS, Role.ASSISTANT, CALLOUT_AI_PREFIX),
)

_MARKER_BY_KEY: dict[tuple[SurfaceFormat, Role], LineMarker] = {
    (marker.format, marker.role): marker for marker in _MARKERS
}


class ValidationErrorKind(str, Enum):
    """Structural problems that stop a transcript from being sent."""

    FORMAT_MISMATCH = "format_mismatch"
    AMBIGUOUS = "ambiguous"
    NO_STRUCTURE = "no_structure"
    EMPTY_QUERY = "empty_query"
    ALTERNATION = "alternation"


@dataclass(frozen=True)
class ValidationError:
    """User-facing description of a structural problem."""

    kind: ValidationErrorKind
    message: str


@dataclass(frozen=True)
class FormatValidation:
    """Result of :func:`validate`; exactly one of ``format``/``error`` is set."""

    format: SurfaceFormat | None = None
    error: ValidationError | None = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


def classify_line(line: str) -> LineMarker | None:
    """Return the marker opening ``line``, or ``None`` for plain content."""

    for marker in _MARKERS:
        if line.startswith(marker.prefix):
            return marker
    return None


def marker_for(fmt: SurfaceFormat, role: Role) -> LineMarker:
    """Return the marker used to open a ``role`` turn in ``fmt``."""

    try:
        return _MARKER_BY_KEY[(fmt, role)]
    except KeyError as exc:
        raise ValueError(f"Surface format '{fmt.value}' has no turn markers.") from exc


def detect(text: str) -> SurfaceFormat:
    """Classify the surface syntax used by ``text``."""

    has_headers = False
    has_callouts = False

    for line in text.split("\n"):
        marker = classify_line(line)
        if marker is None:
            continue
        if marker.format is SurfaceFormat.HEADERS:
            has_headers = True
        elif marker.format is SurfaceFormat.CALLOUTS:
            has_callouts = True
        if has_headers and has_callouts:
            return SurfaceFormat.MIXED

    if has_headers:
        return SurfaceFormat.HEADERS
    if has_callouts:
        return SurfaceFormat.CALLOUTS
    return SurfaceFormat.EMPTY


def validate(text: str, expected: SurfaceFormat) -> FormatValidation:
    """Check that ``text`` is a single-format, non-blank transcript in ``expected`` format."""

    detected = detect(text)

    if detected is SurfaceFormat.MIXED:
        return _failure(
            ValidationErrorKind.AMBIGUOUS,
            "This chat contains mixed formatting (both headers and callouts).",
        )
    if detected is SurfaceFormat.EMPTY:
        return _failure(
            ValidationErrorKind.NO_STRUCTURE,
            "No valid formatting found (headers or callouts).",
        )
    if detected is not expected:
        if detected is SurfaceFormat.HEADERS:
            message = (
                'This chat uses header format, please disable "Use callouts for chat '
                'formatting" in settings to continue.'
            )
        else:
            message = (
                'This chat uses callout format, please enable "Use callouts for chat '
                'formatting" in settings to continue.'
            )
        return _failure(ValidationErrorKind.FORMAT_MISMATCH, message)

    if not _has_content(text.split("\n"), detected):
        return _failure(ValidationErrorKind.EMPTY_QUERY, "Query message is empty.")

    return FormatValidation(format=detected)


def _failure(kind: ValidationErrorKind, message: str) -> FormatValidation:
    logger.debug("Chat validation failed (%s): %s", kind.value, message)
    return FormatValidation(error=ValidationError(kind, message))


def _has_content(lines: Iterable[str], fmt: SurfaceFormat) -> bool:
    for line in lines:
        if classify_line(line) is not None:
            continue
        if fmt is SurfaceFormat.CALLOUTS:
            line = strip_quote(line)
        if line.strip():
            return True
    return False


def strip_quote(line: str) -> str:
    """Remove one leading quotation prefix from ``line``."""

    if line.startswith(QUOTE_PREFIX):
        return line[len(QUOTE_PREFIX):]
    if line == QUOTE_PREFIX.rstrip():
        return ""
    return line


def quote_block(text: str) -> str:
    """Quote every line of a complete reply; blank lines become a bare ``>``."""

    bare = QUOTE_PREFIX.rstrip()
    return "\n".join(bare if not line.strip() else QUOTE_PREFIX + line for line in text.split("\n"))


def format_user_section(fmt: SurfaceFormat, *, new_file: bool = False) -> str:
    """Return the text that opens a new, empty user turn."""

    prefix = "" if new_file else "\n\n"
    marker = marker_for(fmt, Role.USER)
    if fmt is SurfaceFormat.CALLOUTS:
        return prefix + marker.prefix + "\n" + QUOTE_PREFIX
    return prefix + marker.prefix + "\n"


def format_assistant_section(fmt: SurfaceFormat) -> str:
    """Return the text that opens an assistant reply."""

    return "\n\n" + marker_for(fmt, Role.ASSISTANT).prefix + "\n"


def render_transcript(turns: Iterable[Turn], fmt: SurfaceFormat) -> str:
    """Serialise turns back into ``fmt`` using their unexpanded source text."""

    blocks: list[str] = []
    for turn in turns:
        marker = marker_for(fmt, turn.role)
        body = turn.source
        if fmt is SurfaceFormat.CALLOUTS:
            body = "\n".join(QUOTE_PREFIX + line for line in body.split("\n"))
        blocks.append(marker.prefix + "\n" + body)
    return "\n\n".join(blocks)
