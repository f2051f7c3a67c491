"""Prompt templates inserted into chats."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["CURSOR_PLACEHOLDER", "DEFAULT_TEMPLATES", "PromptTemplate", "expand_template"]

CURSOR_PLACEHOLDER = "{cursor}"


@dataclass(frozen=True)
class PromptTemplate:
    """A named snippet; ``{cursor}`` marks where the cursor lands after insertion."""

    name: str
    template: str


DEFAULT_TEMPLATES: tuple[PromptTemplate, ...] = (
    PromptTemplate(
        "Summarize",
        "Please provide a comprehensive summary of the following content. Include the main "
        "points, key takeaways, and important details:\n\n" + CURSOR_PLACEHOLDER,
    ),
    PromptTemplate(
        "Rewrite",
        "Please rewrite the following text to improve clarity, readability, and flow while "
        "maintaining the original meaning and tone:\n\n" + CURSOR_PLACEHOLDER,
    ),
)


def expand_template(template: PromptTemplate) -> tuple[str, int]:
    """Return the text to insert and the cursor offset within it.

    Only the first placeholder is consumed. Without one the cursor goes to the end.
    """

    text = template.template
    index = text.find(CURSOR_PLACEHOLDER)
    if index == -1:
        return text, len(text)
    return text[:index] + text[index + len(CURSOR_PLACEHOLDER):], index
