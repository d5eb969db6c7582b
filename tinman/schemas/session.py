"""Session persistence schemas.

Defines the SessionRecord (one generation run), SessionSummary (listing),
and SessionQuery (filter params).
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class SessionStatus(StrEnum):
    """Completion state of a session."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


class SessionRecord(BaseModel):
    """Full record of one generation run."""

    session_id: str = Field(description="Opaque session identifier")
    chat_id: str = Field(description="Owning chat identifier")
    user_id: str | None = Field(default=None, description="Requesting user, if known")
    model: str = Field(default="", description="Model key used for the chat stream")
    status: SessionStatus = Field(default=SessionStatus.ACTIVE, description="Completion state")
    created_at: datetime = Field(description="When the session started")
    completed_at: datetime | None = Field(
        default=None, description="When the session reached a terminal state",
    )
    transcript: str = Field(default="", description="Accumulated assistant text")
    event_count: int = Field(default=0, ge=0, description="Number of stored events")
    abort_reason: str = Field(default="", description="Coarse abort reason if aborted")
    duration_seconds: float = Field(default=0.0, description="Wall-clock duration")


class SessionSummary(BaseModel):
    """Lightweight session summary for listing."""

    session_id: str = Field(description="Session identifier")
    chat_id: str = Field(description="Owning chat identifier")
    status: SessionStatus = Field(description="Completion state")
    created_at: datetime = Field(description="When the session started")
    transcript_preview: str = Field(
        default="", description="First 100 characters of the transcript",
    )
    event_count: int = Field(default=0, description="Number of stored events")
    document_count: int = Field(default=0, description="Documents produced by the session")
    duration_seconds: float = Field(default=0.0, description="Duration in seconds")


class SessionQuery(BaseModel):
    """Query parameters for listing sessions."""

    limit: int = Field(default=20, ge=1, le=100, description="Max sessions to return")
    offset: int = Field(default=0, ge=0, description="Offset for pagination")
    chat_id: str | None = Field(default=None, description="Filter by chat")
    status: SessionStatus | None = Field(default=None, description="Filter by status")
    since: str | None = Field(
        default=None, description="Filter sessions after this ISO date",
    )
