"""update_document tool: write a new version of an existing artifact."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from tinman.artifacts.registry import get_document_handler
from tinman.schemas.documents import Document
from tinman.schemas.events import EventKind
from tinman.tools.base import Tool, ToolContext
from tinman.validation.adapter import create_streaming_schema


class UpdateDocumentInput(BaseModel):
    """Arguments of update_document."""

    id: str = Field(min_length=1, description="ID of the document to update")
    description: str = Field(
        min_length=1, description="Description of the changes that need to be made",
    )


async def update_document(params: UpdateDocumentInput, context: ToolContext) -> dict[str, Any]:
    document = await context.get_document(params.id)
    if document is None:
        return {"error": "Document not found"}

    handler = get_document_handler(document.kind)
    await context.emit(EventKind.ARTIFACT_UPDATE, {
        "id": document.id,
        "kind": document.kind.value,
        "title": document.title,
        "description": params.description,
    })

    content = await handler.update_document(
        document, params.description, context.sink(document.id, document.kind),
    )
    context.stage_document(Document(
        id=document.id,
        kind=document.kind,
        title=document.title,
        content=content,
        version=document.version + 1,
        chat_id=context.chat_id,
        session_id=context.session_id,
        user_id=context.user_id,
    ))
    await context.emit(EventKind.ARTIFACT_FINISH, {"id": document.id})

    return {
        "id": document.id,
        "title": document.title,
        "kind": document.kind.value,
        "content": "The document has been updated successfully.",
    }


UPDATE_DOCUMENT_TOOL = Tool(
    name="update_document",
    description="Update a document with the given description.",
    schema=create_streaming_schema(UpdateDocumentInput),
    execute=update_document,
)
