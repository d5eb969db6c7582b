"""Artifact handler contract and the per-document sink.

A DocumentHandler is a pair of async callables for one artifact kind:

    on_create(title, sink) -> content
    on_update(document, description, sink) -> content

Handlers issue their own generation sub-request through the sink, forward
each validated content change as an artifact-chunk event, and return the
full content. They never persist anything themselves.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tinman.errors import HandlerError
from tinman.parsing.delta import DeltaParser
from tinman.providers.base import GenerationProvider
from tinman.schemas.documents import ArtifactKind, Document
from tinman.schemas.events import EventKind
from tinman.schemas.streaming import ParsedField, ParsedText
from tinman.validation.adapter import CompatibleSchema

logger = logging.getLogger(__name__)

EmitFn = Callable[[EventKind, dict[str, Any]], Awaitable[None]]
CreateCallback = Callable[[str, "ArtifactSink"], Awaitable[str]]
UpdateCallback = Callable[[Document, str, "ArtifactSink"], Awaitable[str]]


class ArtifactSink:
    """Writes one document's content events into the session stream.

    Args:
        document_id: Document being built.
        kind: Artifact kind, echoed in every chunk.
        emit: Coordinator emit function.
        provider: Provider used for the handler's generation sub-request.
        timeout: Per-call provider timeout in seconds.
        image_provider: Provider for image generation. Defaults to ``provider``.
    """

    def __init__(
        self,
        document_id: str,
        kind: ArtifactKind,
        emit: EmitFn,
        provider: GenerationProvider,
        *,
        timeout: int = 120,
        image_provider: GenerationProvider | None = None,
    ) -> None:
        self.document_id = document_id
        self.kind = kind
        self.provider = provider
        self.image_provider = image_provider or provider
        self.timeout = timeout
        self._emit = emit
        self.chunks = 0

    async def chunk(self, delta: str, *, field: str | None = None, value: Any = None) -> None:
        """Emit one content chunk.

        Args:
            delta: Text appended to the document since the previous chunk.
            field: Name of the streamed field, for object-shaped kinds.
            value: Accumulated field value, sent alongside the delta.
        """
        data: dict[str, Any] = {"id": self.document_id, "kind": self.kind.value}
        if field is not None:
            data[field] = value
        data["delta"] = delta
        self.chunks += 1
        await self._emit(EventKind.ARTIFACT_CHUNK, data)

    async def clear(self) -> None:
        """Tell clients the content restarts from empty."""
        await self._emit(EventKind.ARTIFACT_CLEAR, {"id": self.document_id})

    async def stream_field(
        self,
        schema: CompatibleSchema,
        field: str,
        *,
        system: str,
        prompt: str,
    ) -> str:
        """Stream one string field of a schema-shaped object into the document.

        Returns:
            The final validated value of the field.
        """
        parser = DeltaParser(schema)
        content = ""
        messages = [{"role": "user", "content": prompt}]
        async for increment in self.provider.stream_object(
            messages, system, schema=schema, timeout=self.timeout,
        ):
            for parsed in parser.feed(increment):
                if not isinstance(parsed, ParsedField) or parsed.field != field:
                    continue
                if parsed.replaced:
                    await self.clear()
                content = parsed.value
                await self.chunk(parsed.delta, field=field, value=content)

        if parser.stats.dropped:
            logger.debug(
                "Document %s: dropped %d invalid increments",
                self.document_id, parser.stats.dropped,
            )
        return content

    async def stream_text(self, *, system: str, prompt: str) -> str:
        """Stream free text into the document.

        Returns:
            The concatenated text.
        """
        parser = DeltaParser()
        parts: list[str] = []
        messages = [{"role": "user", "content": prompt}]
        async for increment in self.provider.stream_text(messages, system, timeout=self.timeout):
            for parsed in parser.feed(increment):
                if isinstance(parsed, ParsedText):
                    parts.append(parsed.text)
                    await self.chunk(parsed.text)
        return "".join(parts)


@dataclass(frozen=True)
class DocumentHandler:
    """Create and update callbacks for one artifact kind."""

    kind: ArtifactKind
    on_create: CreateCallback
    on_update: UpdateCallback

    async def create_document(self, document_id: str, title: str, sink: ArtifactSink) -> str:
        """Run on_create.

        Raises:
            HandlerError: If the callback raises.
        """
        try:
            return await self.on_create(title, sink)
        except Exception as e:
            raise HandlerError(self.kind.value, document_id, e) from e

    async def update_document(self, document: Document, description: str, sink: ArtifactSink) -> str:
        """Run on_update against the current version.

        Raises:
            HandlerError: If the callback raises.
        """
        try:
            return await self.on_update(document, description, sink)
        except Exception as e:
            raise HandlerError(self.kind.value, document.id, e) from e
