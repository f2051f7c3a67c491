"""Core chat domain package: transcripts, references and streamed replies."""

from .config import ChatConfig, ChatRequestSettings
from .errors import CaoApiError, CaoConfigError, CaoError, CaoProviderError
from .formats import FormatValidation, ValidationError, ValidationErrorKind, detect, validate
from .models import (
    ChatRequest,
    ChatResponse,
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    Role,
    StreamEvent,
    SurfaceFormat,
    TextSegment,
    Turn,
    UsageEvent,
)
from .parser import ChatValidation, parse, validate_chat
from .references import InMemoryDocumentStore, ReferenceResolver, ReferenceToken
from .response import ResponseWriter
from .service import ChatService
from .templates import CURSOR_PLACEHOLDER, DEFAULT_TEMPLATES, PromptTemplate, expand_template
from .transducer import transform

__all__ = [
    "ChatConfig",
    "ChatRequestSettings",
    "CaoError",
    "CaoApiError",
    "CaoConfigError",
    "CaoProviderError",
    "FormatValidation",
    "ValidationError",
    "ValidationErrorKind",
    "detect",
    "validate",
    "ChatRequest",
    "ChatResponse",
    "ContentEvent",
    "DoneEvent",
    "ErrorEvent",
    "Role",
    "StreamEvent",
    "SurfaceFormat",
    "TextSegment",
    "Turn",
    "UsageEvent",
    "ChatValidation",
    "parse",
    "validate_chat",
    "InMemoryDocumentStore",
    "ReferenceResolver",
    "ReferenceToken",
    "ResponseWriter",
    "ChatService",
    "CURSOR_PLACEHOLDER",
    "DEFAULT_TEMPLATES",
    "PromptTemplate",
    "expand_template",
    "transform",
]
