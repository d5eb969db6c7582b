"""Text artifact: markdown prose streamed as plain text."""

from __future__ import annotations

from tinman.artifacts.base import ArtifactSink, DocumentHandler
from tinman.prompts import render_prompt
from tinman.schemas.documents import ArtifactKind, Document


async def _create(title: str, sink: ArtifactSink) -> str:
    return await sink.stream_text(system=render_prompt("text"), prompt=title)


async def _update(document: Document, description: str, sink: ArtifactSink) -> str:
    return await sink.stream_text(
        system=render_prompt("update_document", content=document.content, kind="text"),
        prompt=description,
    )


text_document_handler = DocumentHandler(
    kind=ArtifactKind.TEXT, on_create=_create, on_update=_update,
)
