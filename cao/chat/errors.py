"""Exceptions raised while turning a chat note into a completion request and reply."""

from __future__ import annotations

__all__ = [
    "CaoError",
    "CaoProviderError",
    "CaoApiError",
    "CaoConfigError",
]


class CaoError(Exception):
    """Root of every error raised by the chat package."""


class CaoProviderError(CaoError):
    """A completion backend rejected the request or its reply stream broke off."""


class CaoApiError(CaoError):
    """A chat was requested in a state that cannot produce a reply, such as no usable provider."""


class CaoConfigError(CaoError):
    """An API key, model name, provider id or request setting is missing or out of range."""
