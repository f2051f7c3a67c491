"""Base provider abstractions and the shared stream normaliser."""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Mapping, Optional

from cao.chat.errors import CaoProviderError
from cao.chat.models import (
    ChatRequest,
    ChatResponse,
    DoneEvent,
    ErrorEvent,
    StreamEvent,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    import httpx

logger = logging.getLogger(__name__)

EventAdapter = Callable[[Any], Optional[StreamEvent]]
"""Maps one backend-specific raw event to a unified event, or ``None`` to skip it."""


@dataclass(slots=True)
class ProviderSettings:
    """Immutable-like configuration holder for provider instances."""

    api_key: str
    model: str
    base_url: str | None = None
    timeout: float = 60.0
    http_client: "httpx.AsyncClient" | None = None


async def normalize_stream(source: Any, adapter: EventAdapter) -> AsyncIterator[StreamEvent]:
    """Adapt a backend event source into unified stream events.

    Emits one event per adapted raw event, in arrival order, followed by a
    single :class:`DoneEvent`. Any failure while iterating or adapting ends the
    stream with a single :class:`ErrorEvent` instead. The source is released on
    every exit path, including when the consumer stops iterating early.
    """

    try:
        try:
            async for raw_event in source:
                event = adapter(raw_event)
                if event is not None:
                    yield event
        except Exception as exc:  # noqa: BLE001 - surfaced as a terminal error event
            logger.warning("Provider stream failed: %s", str(exc) or exc.__class__.__name__)
            yield ErrorEvent(exc)
            return
        yield DoneEvent()
    finally:
        await release_source(source)


async def release_source(source: Any) -> None:
    """Close a backend event source, awaiting the closer when it is a coroutine."""

    closer = getattr(source, "aclose", None)
    if not callable(closer):
        closer = getattr(source, "close", None)
    if not callable(closer):
        return
    try:
        result = closer()
        if inspect.isawaitable(result):
            await result
    except Exception as exc:  # noqa: BLE001 - closing must not mask the stream outcome
        logger.debug("Failed to close provider stream: %s", exc)
    else:
        logger.debug("Provider stream released")


class BaseProvider(ABC):
    """Base class for completion backends wrapping an async SDK client."""

    id: str = ""
    name: str = ""

    def __init__(self, settings: ProviderSettings) -> None:
        self._settings = settings
        self._client: Any | None = None

    @property
    def settings(self) -> ProviderSettings:
        """Return the provider settings."""

        return self._settings

    def _ensure_client(self) -> Any:
        if self._client is None:
            self._client = self._create_client()
            logger.debug("Created %s client for model '%s'", self.id, self._settings.model)
        return self._client

    @abstractmethod
    def _create_client(self) -> Any:
        """Instantiate the backend SDK client."""

    @abstractmethod
    async def send_message(self, request: ChatRequest) -> ChatResponse:
        """Execute a single-shot completion request."""

    @abstractmethod
    def stream_message(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Execute a streaming completion request as unified events."""

    async def _stream(
        self,
        open_stream: Callable[[], Any],
        adapter: EventAdapter,
    ) -> AsyncIterator[StreamEvent]:
        """Open a backend stream and normalise it; set-up failures become an error event."""

        try:
            source = open_stream()
            if inspect.isawaitable(source):
                source = await source
        except Exception as exc:  # noqa: BLE001 - surfaced as a terminal error event
            logger.warning("Failed to open %s stream: %s", self.id, exc)
            yield ErrorEvent(self._wrap_exception(exc))
            return

        events = normalize_stream(source, adapter)
        try:
            async for event in events:
                if isinstance(event, ErrorEvent) and not isinstance(event.cause, CaoProviderError):
                    event = ErrorEvent(self._wrap_exception(event.cause))
                yield event
        finally:
            await events.aclose()

    def _wrap_exception(self, exc: BaseException) -> CaoProviderError:
        status = getattr(exc, "status_code", None)
        if status is None:
            status = getattr(exc, "status", None)
        detail = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        if status == 401:
            detail = f"Invalid API key. Please check your {self.name} API key in settings."
        elif status == 404:
            detail = (
                f'Model "{self._settings.model}" not found. '
                "Please verify the model name in settings."
            )
        elif status == 429:
            detail = "Rate limit exceeded. Please try again later."
        error = CaoProviderError(f"Failed to get response from {self.name}: {detail}")
        error.__cause__ = exc
        return error

    async def close(self) -> None:
        """Release any resources held by the provider instance."""

        client = self._client
        self._client = None
        if client is None:
            return
        closer = getattr(client, "close", None)
        if callable(closer):
            result = closer()
            if inspect.isawaitable(result):
                await result

    async def __aenter__(self) -> "BaseProvider":  # pragma: no cover - context mgr sugar
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - context mgr sugar
        await self.close()


def field_of(data: Any, key: str, default: Any = None) -> Any:
    """Read ``key`` from an SDK object or a mapping."""

    if isinstance(data, Mapping):
        return data.get(key, default)
    return getattr(data, key, default)
