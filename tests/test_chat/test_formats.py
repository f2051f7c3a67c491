"""Tests for surface format detection, validation and rendering."""
from __future__ import annotations

import pytest

from cao.chat.formats import (
    CALLOUT_AI_PREFIX,
    CALLOUT_USER_PREFIX,
    HEADER_AI_PREFIX,
    HEADER_USER_PREFIX,
    ValidationErrorKind,
    classify_line,
    detect,
    format_assistant_section,
    format_user_section,
    quote_block,
    validate,
)
from cao.chat.models import Role, SurfaceFormat


def test_classify_line_matches_marker_prefixes() -> None:
    marker = classify_line("### Me")
    assert marker is not None
    assert marker.format is SurfaceFormat.HEADERS
    assert marker.role is Role.USER

    marker = classify_line("> [!success]+ CAO")
    assert marker is not None
    assert marker.format is SurfaceFormat.CALLOUTS
    assert marker.role is Role.ASSISTANT

    assert classify_line("Just a line") is None
    assert classify_line("> quoted text") is None
    assert classify_line(" ### Me") is None


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("### Me\nhello", SurfaceFormat.HEADERS),
        ("### Me\nhello\n### CAO\nhi", SurfaceFormat.HEADERS),
        ("> [!question]+ Me\n> hello", SurfaceFormat.CALLOUTS),
        ("hello\nworld", SurfaceFormat.EMPTY),
        ("", SurfaceFormat.EMPTY),
    ],
)
def test_detect_single_formats(text: str, expected: SurfaceFormat) -> None:
    assert detect(text) is expected


@pytest.mark.parametrize(
    "lines",
    [
        [HEADER_USER_PREFIX, CALLOUT_AI_PREFIX],
        [CALLOUT_USER_PREFIX, HEADER_AI_PREFIX],
        [CALLOUT_AI_PREFIX, "text", HEADER_USER_PREFIX, HEADER_USER_PREFIX],
        [HEADER_AI_PREFIX, HEADER_AI_PREFIX, "x", CALLOUT_USER_PREFIX, CALLOUT_USER_PREFIX],
    ],
)
def test_detect_mixed_regardless_of_order(lines: list[str]) -> None:
    assert detect("\n".join(lines)) is SurfaceFormat.MIXED


def test_validate_accepts_matching_format() -> None:
    result = validate("### Me\nWhat is up?", SurfaceFormat.HEADERS)

    assert result.is_valid
    assert result.format is SurfaceFormat.HEADERS
    assert result.error is None


def test_validate_reports_mixed_as_ambiguous() -> None:
    result = validate("### Me\nhi\n> [!success]+ CAO\nyo", SurfaceFormat.HEADERS)

    assert not result.is_valid
    assert result.error is not None
    assert result.error.kind is ValidationErrorKind.AMBIGUOUS
    assert "mixed formatting" in result.error.message


def test_validate_reports_missing_structure() -> None:
    result = validate("plain note", SurfaceFormat.CALLOUTS)

    assert result.error is not None
    assert result.error.kind is ValidationErrorKind.NO_STRUCTURE


def test_validate_reports_format_mismatch_both_ways() -> None:
    headers = validate("### Me\nhi", SurfaceFormat.CALLOUTS)
    assert headers.error is not None
    assert headers.error.kind is ValidationErrorKind.FORMAT_MISMATCH
    assert "disable" in headers.error.message

    callouts = validate("> [!question]+ Me\n> hi", SurfaceFormat.HEADERS)
    assert callouts.error is not None
    assert callouts.error.kind is ValidationErrorKind.FORMAT_MISMATCH
    assert "enable" in callouts.error.message


@pytest.mark.parametrize(
    ("text", "fmt"),
    [
        ("### Me\n", SurfaceFormat.HEADERS),
        ("### Me\n   \n\n### CAO\n", SurfaceFormat.HEADERS),
        ("> [!question]+ Me\n> ", SurfaceFormat.CALLOUTS),
        ("> [!question]+ Me\n>\n> [!success]+ CAO\n", SurfaceFormat.CALLOUTS),
    ],
)
def test_validate_reports_empty_query(text: str, fmt: SurfaceFormat) -> None:
    result = validate(text, fmt)

    assert result.error is not None
    assert result.error.kind is ValidationErrorKind.EMPTY_QUERY
    assert result.error.message == "Query message is empty."


def test_quote_block_marks_blank_lines_with_bare_prefix() -> None:
    assert quote_block("one\n\ntwo") == "> one\n>\n> two"


def test_section_helpers() -> None:
    assert format_user_section(SurfaceFormat.HEADERS) == "\n\n### Me\n"
    assert format_user_section(SurfaceFormat.HEADERS, new_file=True) == "### Me\n"
    assert format_user_section(SurfaceFormat.CALLOUTS) == "\n\n> [!question]+ Me\n> "
    assert format_assistant_section(SurfaceFormat.HEADERS) == "\n\n### CAO\n"
    assert format_assistant_section(SurfaceFormat.CALLOUTS) == "\n\n> [!success]+ CAO\n"


def test_section_helpers_reject_terminal_formats() -> None:
    with pytest.raises(ValueError):
        format_assistant_section(SurfaceFormat.MIXED)
