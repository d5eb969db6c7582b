"""Sheet artifact: a CSV table streamed as a `csv` field."""

from __future__ import annotations

from pydantic import BaseModel, Field

from tinman.artifacts.base import ArtifactSink, DocumentHandler
from tinman.prompts import render_prompt
from tinman.schemas.documents import ArtifactKind, Document
from tinman.validation.adapter import create_streaming_schema


class SheetArtifact(BaseModel):
    """Streamed payload of a sheet document."""

    csv: str = Field(min_length=1, description="CSV data with a header row")


SHEET_SCHEMA = create_streaming_schema(SheetArtifact)


async def _create(title: str, sink: ArtifactSink) -> str:
    return await sink.stream_field(
        SHEET_SCHEMA, "csv", system=render_prompt("sheet"), prompt=title,
    )


async def _update(document: Document, description: str, sink: ArtifactSink) -> str:
    return await sink.stream_field(
        SHEET_SCHEMA,
        "csv",
        system=render_prompt("update_document", content=document.content, kind="sheet"),
        prompt=description,
    )


sheet_document_handler = DocumentHandler(
    kind=ArtifactKind.SHEET, on_create=_create, on_update=_update,
)
