"""Image artifact: one generated raster image stored as base64."""

from __future__ import annotations

from tinman.artifacts.base import ArtifactSink, DocumentHandler
from tinman.schemas.documents import ArtifactKind, Document


async def _generate(prompt: str, sink: ArtifactSink) -> str:
    image = await sink.image_provider.generate_image(prompt, timeout=sink.timeout)
    await sink.chunk(image, field="image", value=image)
    return image


async def _create(title: str, sink: ArtifactSink) -> str:
    return await _generate(title, sink)


async def _update(document: Document, description: str, sink: ArtifactSink) -> str:
    return await _generate(description, sink)


image_document_handler = DocumentHandler(
    kind=ArtifactKind.IMAGE, on_create=_create, on_update=_update,
)
