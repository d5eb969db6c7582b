"""Artifact document and suggestion schemas."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ArtifactKind(StrEnum):
    """Closed set of artifact document kinds."""

    TEXT = "text"
    CODE = "code"
    IMAGE = "image"
    SHEET = "sheet"


def _now() -> datetime:
    return datetime.now(UTC)


class Document(BaseModel):
    """One version of an artifact document.

    Updates never mutate a stored version; they add a new one with the
    next version number under the same document id.
    """

    id: str = Field(description="Document identifier shared by all versions")
    kind: ArtifactKind = Field(description="Artifact kind")
    title: str = Field(description="Document title")
    content: str = Field(default="", description="Full accumulated content")
    version: int = Field(default=1, ge=1, description="Version number, starting at 1")
    chat_id: str = Field(default="", description="Owning chat identifier")
    session_id: str = Field(default="", description="Session that produced this version")
    user_id: str | None = Field(default=None, description="Owning user, if known")
    created_at: datetime = Field(default_factory=_now, description="When this version was created")


class Suggestion(BaseModel):
    """An edit suggestion attached to a document version."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Suggestion identifier")
    document_id: str = Field(description="Document the suggestion applies to")
    document_version: int = Field(default=1, ge=1, description="Document version it was made against")
    original_sentence: str = Field(description="Sentence as it currently reads")
    suggested_sentence: str = Field(description="Proposed replacement")
    description: str = Field(default="", description="Why the change is suggested")
    is_resolved: bool = Field(default=False, description="Whether the user has acted on it")
    user_id: str | None = Field(default=None, description="User the suggestion belongs to")
    created_at: datetime = Field(default_factory=_now, description="Creation time")
