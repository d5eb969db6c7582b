"""Chat request body schema.

Validated at the HTTP boundary through the schema adapter before a
session is started.
"""

from __future__ import annotations

import uuid
from enum import StrEnum
from typing import Literal, Union

from pydantic import AnyUrl, BaseModel, ConfigDict, Field


class VisibilityType(StrEnum):
    """Who can see a chat."""

    PUBLIC = "public"
    PRIVATE = "private"


class TextPart(BaseModel):
    """A text part of a user message."""

    type: Literal["text"] = Field(description="Part discriminator")
    text: str = Field(min_length=1, max_length=2000, description="Message text")


class FilePart(BaseModel):
    """An uploaded image attached to a user message."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["file"] = Field(description="Part discriminator")
    media_type: Literal["image/jpeg", "image/png"] = Field(
        alias="mediaType", description="MIME type of the upload",
    )
    name: str = Field(min_length=1, max_length=100, description="Original file name")
    url: AnyUrl = Field(description="Where the upload is stored")


class UserMessage(BaseModel):
    """The user turn that starts a generation session."""

    id: uuid.UUID = Field(description="Message identifier")
    role: Literal["user"] = Field(description="Always 'user'")
    parts: list[Union[TextPart, FilePart]] = Field(
        min_length=1, description="Message parts",
    )


class ChatRequest(BaseModel):
    """POST /api/chat request body."""

    model_config = ConfigDict(populate_by_name=True)

    id: uuid.UUID = Field(description="Chat identifier")
    message: UserMessage = Field(description="New user message")
    selected_chat_model: Literal["chat-model", "chat-model-reasoning"] = Field(
        alias="selectedChatModel", description="Requested chat model slot",
    )
    selected_visibility_type: VisibilityType = Field(
        alias="selectedVisibilityType", description="Chat visibility",
    )

    def prompt_text(self) -> str:
        """Concatenate the text parts of the message."""
        return "\n".join(p.text for p in self.message.parts if isinstance(p, TextPart))
