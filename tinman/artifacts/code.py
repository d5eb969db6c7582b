"""Code artifact: a runnable snippet streamed as a `code` field."""

from __future__ import annotations

from pydantic import BaseModel, Field

from tinman.artifacts.base import ArtifactSink, DocumentHandler
from tinman.prompts import render_prompt
from tinman.schemas.documents import ArtifactKind, Document
from tinman.validation.adapter import create_streaming_schema


class CodeArtifact(BaseModel):
    """Streamed payload of a code document."""

    code: str = Field(min_length=1, description="Complete, runnable source code")


CODE_SCHEMA = create_streaming_schema(CodeArtifact)


async def _create(title: str, sink: ArtifactSink) -> str:
    return await sink.stream_field(
        CODE_SCHEMA, "code", system=render_prompt("code"), prompt=title,
    )


async def _update(document: Document, description: str, sink: ArtifactSink) -> str:
    return await sink.stream_field(
        CODE_SCHEMA,
        "code",
        system=render_prompt("update_document", content=document.content, kind="code"),
        prompt=description,
    )


code_document_handler = DocumentHandler(
    kind=ArtifactKind.CODE, on_create=_create, on_update=_update,
)
