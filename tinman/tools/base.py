"""Tool contract and the per-session tool context.

A Tool pairs a CompatibleSchema for its input with an async execute
function. The coordinator validates the model's arguments against the
schema before execute is called, so execute always receives a validated
model instance.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from tinman.artifacts.base import ArtifactSink, EmitFn
from tinman.persistence.documents import DocumentStore
from tinman.providers.base import GenerationProvider
from tinman.schemas.documents import ArtifactKind, Document, Suggestion
from tinman.validation.adapter import CompatibleSchema


@dataclass
class ToolContext:
    """Everything a tool may touch while it runs inside a session.

    Finished documents and suggestions are staged here and only written
    to the database when the session finalizes.
    """

    session_id: str
    chat_id: str
    emit: EmitFn
    provider: GenerationProvider
    documents: DocumentStore | None = None
    user_id: str | None = None
    timeout: int = 120
    http_client: httpx.AsyncClient | None = None
    image_provider: GenerationProvider | None = None
    staged_documents: list[Document] = field(default_factory=list)
    staged_suggestions: list[Suggestion] = field(default_factory=list)

    def sink(self, document_id: str, kind: ArtifactKind) -> ArtifactSink:
        return ArtifactSink(
            document_id, kind, self.emit, self.provider,
            timeout=self.timeout, image_provider=self.image_provider,
        )

    def stage_document(self, document: Document) -> None:
        self.staged_documents.append(document)

    def stage_suggestions(self, suggestions: list[Suggestion]) -> None:
        self.staged_suggestions.extend(suggestions)

    async def get_document(self, document_id: str) -> Document | None:
        """Latest version of a document, including versions staged this session."""
        for document in reversed(self.staged_documents):
            if document.id == document_id:
                return document
        if self.documents is None:
            return None
        return await self.documents.get_document_by_id(document_id)


ExecuteFn = Callable[[Any, ToolContext], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class Tool:
    """A model-callable tool."""

    name: str
    description: str
    schema: CompatibleSchema
    execute: ExecuteFn

    def definition(self, legacy: bool = True) -> dict[str, Any]:
        """Tool definition in OpenAI function-calling format.

        Args:
            legacy: Export parameters from the pydantic.v1 shape.
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.schema.tool_parameters(legacy=legacy),
            },
        }
