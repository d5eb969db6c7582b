"""Delta event schemas.

Defines the EventKind tags and the DeltaEvent model, the atomic unit that
flows from the coordinator to the stream store and to live subscribers.
"""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class EventKind(StrEnum):
    """Tag identifying the payload shape of a DeltaEvent."""

    TEXT_DELTA = "text-delta"
    ARTIFACT_CREATE = "artifact-create"
    ARTIFACT_UPDATE = "artifact-update"
    ARTIFACT_CHUNK = "artifact-chunk"
    ARTIFACT_CLEAR = "artifact-clear"
    ARTIFACT_FINISH = "artifact-finish"
    SUGGESTION = "suggestion"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"
    TOOL_ERROR = "tool-error"
    ERROR = "error"
    FINISH = "finish"

    @property
    def is_transient(self) -> bool:
        """Whether events of this kind are delivered live only and never stored."""
        return self in _TRANSIENT_KINDS

    @property
    def is_terminal(self) -> bool:
        """Whether events of this kind end the session."""
        return self in _TERMINAL_KINDS


_TRANSIENT_KINDS = frozenset({
    EventKind.ARTIFACT_FINISH,
    EventKind.SUGGESTION,
    EventKind.TOOL_CALL,
    EventKind.TOOL_RESULT,
})

_TERMINAL_KINDS = frozenset({EventKind.ERROR, EventKind.FINISH})


class DeltaEvent(BaseModel):
    """One event in a session's output stream.

    Stored events carry a sequence number that is contiguous from 1 within
    the session. Transient events carry no sequence number and are never
    written to the stream store.
    """

    session_id: str = Field(description="Session this event belongs to")
    kind: EventKind = Field(description="Event kind tag")
    data: dict[str, Any] = Field(default_factory=dict, description="Kind-specific payload")
    seq: int | None = Field(
        default=None, ge=1, description="Store sequence number (None for transient events)",
    )
    transient: bool = Field(
        default=False, description="Delivered live only, never persisted for replay",
    )
    timestamp: float = Field(default_factory=time.time, description="Unix timestamp")
