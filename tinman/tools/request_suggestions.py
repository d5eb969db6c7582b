"""request_suggestions tool: stream writing suggestions for a document.

The model returns an object with a `suggestions` array. Every array
element except the last is complete in a valid snapshot, so elements are
published as soon as a later one starts and the last one at end of stream.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from tinman.parsing.delta import DeltaParser
from tinman.prompts import render_prompt
from tinman.schemas.documents import Suggestion
from tinman.schemas.events import EventKind
from tinman.schemas.streaming import ParsedField
from tinman.tools.base import Tool, ToolContext
from tinman.validation.adapter import create_streaming_schema

MAX_SUGGESTIONS = 5


class RequestSuggestionsInput(BaseModel):
    """Arguments of request_suggestions."""

    document_id: str = Field(min_length=1, description="ID of the document to request edits for")


class SuggestionDraft(BaseModel):
    """One suggestion as streamed by the model."""

    original_sentence: str = Field(min_length=1, description="The original sentence")
    suggested_sentence: str = Field(min_length=1, description="The suggested sentence")
    description: str = Field(default="", description="The description of the suggestion")


class SuggestionBatch(BaseModel):
    """Streamed payload of a suggestions request."""

    suggestions: list[SuggestionDraft] = Field(
        default_factory=list, max_length=MAX_SUGGESTIONS, description="Suggested edits",
    )


SUGGESTION_BATCH_SCHEMA = create_streaming_schema(SuggestionBatch)


async def request_suggestions(
    params: RequestSuggestionsInput, context: ToolContext,
) -> dict[str, Any]:
    document = await context.get_document(params.document_id)
    if document is None or not document.content:
        return {"error": "Document not found"}

    published: list[Suggestion] = []

    async def publish(draft: SuggestionDraft) -> None:
        suggestion = Suggestion(
            document_id=document.id,
            document_version=document.version,
            original_sentence=draft.original_sentence,
            suggested_sentence=draft.suggested_sentence,
            description=draft.description,
            user_id=context.user_id,
        )
        published.append(suggestion)
        await context.emit(EventKind.SUGGESTION, suggestion.model_dump(
            mode="json", exclude={"user_id", "created_at"},
        ))

    parser = DeltaParser(SUGGESTION_BATCH_SCHEMA)
    drafts: list[SuggestionDraft] = []
    async for increment in context.provider.stream_object(
        [{"role": "user", "content": document.content}],
        render_prompt("suggestions", limit=MAX_SUGGESTIONS),
        schema=SUGGESTION_BATCH_SCHEMA,
        timeout=context.timeout,
    ):
        for parsed in parser.feed(increment):
            if isinstance(parsed, ParsedField) and parsed.field == "suggestions":
                drafts = parsed.value
                while len(published) < len(drafts) - 1:
                    await publish(drafts[len(published)])

    while len(published) < len(drafts):
        await publish(drafts[len(published)])

    if context.user_id:
        context.stage_suggestions(published)

    return {
        "id": document.id,
        "title": document.title,
        "kind": document.kind.value,
        "message": "Suggestions have been added to the document",
    }


REQUEST_SUGGESTIONS_TOOL = Tool(
    name="request_suggestions",
    description="Request suggestions for a document.",
    schema=create_streaming_schema(RequestSuggestionsInput),
    execute=request_suggestions,
)
