"""Tinman schema definitions.

All Pydantic v2 models used across the streaming core, persistence,
and configuration.
"""

from tinman.schemas.compat import CompatibilityReport, PerformanceMetrics, SchemaCheck
from tinman.schemas.config import (
    AppConfig,
    ModelConfig,
    ModelRole,
    StoreBackend,
    StreamConfig,
    ValidationConfig,
)
from tinman.schemas.documents import ArtifactKind, Document, Suggestion
from tinman.schemas.events import DeltaEvent, EventKind
from tinman.schemas.request import (
    ChatRequest,
    FilePart,
    TextPart,
    UserMessage,
    VisibilityType,
)
from tinman.schemas.session import (
    SessionQuery,
    SessionRecord,
    SessionStatus,
    SessionSummary,
)
from tinman.schemas.streaming import (
    FinishIncrement,
    ObjectIncrement,
    ParsedDelta,
    ParsedField,
    ParsedFinish,
    ParsedText,
    ParsedToolCall,
    ParserStats,
    RawIncrement,
    TextIncrement,
    ToolCallIncrement,
)

__all__ = [
    # compat
    "CompatibilityReport",
    "PerformanceMetrics",
    "SchemaCheck",
    # config
    "AppConfig",
    "ModelConfig",
    "ModelRole",
    "StoreBackend",
    "StreamConfig",
    "ValidationConfig",
    # documents
    "ArtifactKind",
    "Document",
    "Suggestion",
    # events
    "DeltaEvent",
    "EventKind",
    # request
    "ChatRequest",
    "FilePart",
    "TextPart",
    "UserMessage",
    "VisibilityType",
    # session
    "SessionQuery",
    "SessionRecord",
    "SessionStatus",
    "SessionSummary",
    # streaming
    "FinishIncrement",
    "ObjectIncrement",
    "ParsedDelta",
    "ParsedField",
    "ParsedFinish",
    "ParsedText",
    "ParsedToolCall",
    "ParserStats",
    "RawIncrement",
    "TextIncrement",
    "ToolCallIncrement",
]
