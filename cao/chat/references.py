"""Wikilink extraction, resolution and context expansion."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, MutableSet, Protocol, Sequence

logger = logging.getLogger(__name__)

__all__ = [
    "BLOCK_MARKER",
    "BlockSpan",
    "DocumentStore",
    "HeadingInfo",
    "InMemoryDocumentStore",
    "ReferenceResolver",
    "ReferenceToken",
    "StoredDocument",
    "extract_wikilinks",
]

BLOCK_MARKER = "^"

_WIKILINK_RE = re.compile(r"\[\[(.*?)\]\]")
_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$")
_BLOCK_ID_RE = re.compile(r"(?:^|\s)\^([A-Za-z0-9-]+)[ \t]*$")


@dataclass(frozen=True)
class HeadingInfo:
    """A heading and the zero-based line it sits on, or ``None`` when the host does not say."""

    heading: str
    level: int
    line: int | None = None


@dataclass(frozen=True)
class BlockSpan:
    """Inclusive, zero-based line range of a block anchor."""

    start_line: int
    end_line: int


@dataclass(frozen=True)
class StoredDocument:
    """Read-only view of a host document and its structural metadata."""

    name: str
    text: str
    headings: Sequence[HeadingInfo] = ()
    blocks: Mapping[str, BlockSpan] = field(default_factory=dict)


class DocumentStore(Protocol):
    """Host collaborator giving read access to documents by link name."""

    def lookup(self, name: str) -> StoredDocument | None:  # pragma: no cover - typing aid
        ...


@dataclass(frozen=True)
class ReferenceToken:
    """Lookup key of a wikilink: target document plus optional heading/block."""

    target: str
    sub_path: str | None = None

    @classmethod
    def parse(cls, link: str) -> "ReferenceToken":
        """Parse the inside of ``[[...]]``, ignoring any display text."""

        link = link.split("|", 1)[0]
        # Only the first sub path is kept, so [[Doc#H1#H2]] points at H1.
        target, *sub_paths = link.split("#")
        sub_path = sub_paths[0] if sub_paths else None
        return cls(target=target, sub_path=sub_path or None)

    @property
    def is_block(self) -> bool:
        return bool(self.sub_path) and self.sub_path.startswith(BLOCK_MARKER)

    def __str__(self) -> str:
        if self.sub_path:
            return f"{self.target}#{self.sub_path}"
        return self.target


def extract_wikilinks(text: str) -> list[str]:
    """Return link keys of every ``[[...]]`` in ``text``, duplicates included."""

    return [match.split("|", 1)[0] for match in _WIKILINK_RE.findall(text)]


class ReferenceResolver:
    """Resolves wikilinks against a :class:`DocumentStore` and inlines their content."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def resolve(self, token: ReferenceToken) -> str | None:
        document = self._store.lookup(token.target)
        if document is None:
            logger.warning("Could not find document: %s", token.target)
            return None

        if not token.sub_path:
            return document.text
        if token.is_block:
            return _block_text(document, token.sub_path[len(BLOCK_MARKER):])
        return _heading_section(document, token.sub_path)

    def expand(self, raw_text: str, processed: MutableSet[str]) -> str:
        """Prefix ``raw_text`` as a user query and append each new reference's content.

        Keys already present in ``processed`` are skipped; every key resolved here
        is added to it, so a reference is inlined at most once per parse.
        """

        prompt = f"User query: {raw_text}"
        for link in extract_wikilinks(raw_text):
            if link in processed:
                continue
            content = self.resolve(ReferenceToken.parse(link))
            if content is None:
                continue
            prompt += f"\n\nContext from [[{link}]]:\n{content}"
            processed.add(link)
        return prompt


def _heading_section(document: StoredDocument, heading_name: str) -> str | None:
    headings = list(document.headings)
    if any(h.line is None for h in headings):
        # Host metadata without positions; locate headings from the text itself.
        headings = list(scan_markdown(document.name, document.text).headings)

    index = next((i for i, h in enumerate(headings) if h.heading == heading_name), None)
    if index is None:
        logger.warning("Heading '%s' not found in %s", heading_name, document.name)
        return None

    heading = headings[index]
    lines = document.text.split("\n")
    end = len(lines)
    for following in headings[index + 1:]:
        if following.level <= heading.level:
            end = following.line
            break
    return "\n".join(lines[heading.line:end])


def _block_text(document: StoredDocument, block_id: str) -> str | None:
    span = document.blocks.get(block_id)
    if span is None:
        logger.warning("Block '^%s' not found in %s", block_id, document.name)
        return None
    lines = document.text.split("\n")
    return "\n".join(lines[span.start_line:span.end_line + 1])


def scan_markdown(name: str, text: str) -> StoredDocument:
    """Build heading and block metadata for a Markdown document."""

    headings: list[HeadingInfo] = []
    blocks: dict[str, BlockSpan] = {}
    lines = text.split("\n")
    paragraph_start: int | None = None
    in_fence = False

    for index, line in enumerate(lines):
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            paragraph_start = None
            continue
        if in_fence:
            continue
        if not line.strip():
            paragraph_start = None
            continue
        if paragraph_start is None:
            paragraph_start = index

        heading = _HEADING_RE.match(line)
        if heading:
            headings.append(
                HeadingInfo(heading=heading.group(2), level=len(heading.group(1)), line=index)
            )
            paragraph_start = None
            continue

        anchor = _BLOCK_ID_RE.search(line)
        if anchor:
            start = paragraph_start
            if line.strip() == BLOCK_MARKER + anchor.group(1) and index > 0:
                # A standalone anchor line tags the block just above it.
                start = _previous_block_start(lines, index)
            blocks[anchor.group(1)] = BlockSpan(start_line=start, end_line=index)
            paragraph_start = None

    return StoredDocument(name=name, text=text, headings=tuple(headings), blocks=blocks)


def _previous_block_start(lines: Sequence[str], anchor_index: int) -> int:
    index = anchor_index - 1
    if not lines[index].strip():
        index -= 1
    while index > 0 and lines[index - 1].strip():
        index -= 1
    return max(index, 0)


class InMemoryDocumentStore:
    """Dictionary-backed :class:`DocumentStore` keyed by document name or path."""

    def __init__(self, documents: Mapping[str, str] | Iterable[tuple[str, str]] = ()) -> None:
        self._documents: dict[str, StoredDocument] = {}
        items = documents.items() if isinstance(documents, Mapping) else documents
        for name, text in items:
            self.add(name, text)

    def add(self, name: str, text: str) -> StoredDocument:
        key = _normalise_name(name)
        document = scan_markdown(key, text)
        self._documents[key] = document
        return document

    def lookup(self, name: str) -> StoredDocument | None:
        key = _normalise_name(name)
        document = self._documents.get(key)
        if document is not None:
            return document
        # Fall back to the shortest path whose basename matches the link.
        candidates = [
            doc for path, doc in self._documents.items() if path.rsplit("/", 1)[-1] == key
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda doc: len(doc.name))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name) is not None

    def __len__(self) -> int:
        return len(self._documents)


def _normalise_name(name: str) -> str:
    name = name.strip()
    if name.endswith(".md"):
        name = name[:-3]
    return name
