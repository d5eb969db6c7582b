"""create_document tool: start a new artifact and stream its first version."""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, Field

from tinman.artifacts.registry import get_document_handler
from tinman.schemas.documents import ArtifactKind, Document
from tinman.schemas.events import EventKind
from tinman.tools.base import Tool, ToolContext
from tinman.validation.adapter import create_streaming_schema


class CreateDocumentInput(BaseModel):
    """Arguments of create_document."""

    title: str = Field(min_length=1, description="Title of the document")
    kind: ArtifactKind = Field(description="Kind of document to create")


async def create_document(params: CreateDocumentInput, context: ToolContext) -> dict[str, Any]:
    handler = get_document_handler(params.kind)
    document_id = str(uuid.uuid4())

    await context.emit(EventKind.ARTIFACT_CREATE, {
        "id": document_id,
        "kind": params.kind.value,
        "title": params.title,
    })

    content = await handler.create_document(
        document_id, params.title, context.sink(document_id, params.kind),
    )
    context.stage_document(Document(
        id=document_id,
        kind=params.kind,
        title=params.title,
        content=content,
        version=1,
        chat_id=context.chat_id,
        session_id=context.session_id,
        user_id=context.user_id,
    ))
    await context.emit(EventKind.ARTIFACT_FINISH, {"id": document_id})

    return {
        "id": document_id,
        "title": params.title,
        "kind": params.kind.value,
        "content": "A document was created and is now visible to the user.",
    }


CREATE_DOCUMENT_TOOL = Tool(
    name="create_document",
    description=(
        "Create a document for writing or content creation activities. "
        "Generates the content of the document based on the title and kind."
    ),
    schema=create_streaming_schema(CreateDocumentInput),
    execute=create_document,
)
