"""Chat transcripts inside plain Markdown notes."""

__version__ = "1.0.0"
