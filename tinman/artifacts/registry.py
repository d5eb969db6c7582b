"""Artifact kind registry.

Maps each ArtifactKind to its DocumentHandler. The set of kinds is fixed
at deployment time: adding a kind means one enum member, one handler
module, and one entry in DOCUMENT_HANDLERS.
"""

from __future__ import annotations

from tinman.artifacts.base import DocumentHandler
from tinman.artifacts.code import code_document_handler
from tinman.artifacts.image import image_document_handler
from tinman.artifacts.sheet import sheet_document_handler
from tinman.artifacts.text import text_document_handler
from tinman.errors import ConfigurationError
from tinman.schemas.documents import ArtifactKind

DOCUMENT_HANDLERS: dict[ArtifactKind, DocumentHandler] = {
    ArtifactKind.TEXT: text_document_handler,
    ArtifactKind.CODE: code_document_handler,
    ArtifactKind.IMAGE: image_document_handler,
    ArtifactKind.SHEET: sheet_document_handler,
}

ARTIFACT_KINDS: tuple[ArtifactKind, ...] = tuple(DOCUMENT_HANDLERS)


def get_document_handler(
    kind: ArtifactKind | str,
    handlers: dict[ArtifactKind, DocumentHandler] | None = None,
) -> DocumentHandler:
    """Look up the handler for a kind by exact tag.

    Raises:
        ConfigurationError: If no handler is registered for the kind.
    """
    table = DOCUMENT_HANDLERS if handlers is None else handlers
    try:
        tag = ArtifactKind(kind)
    except ValueError:
        raise ConfigurationError(f"Unknown artifact kind '{kind}'") from None
    handler = table.get(tag)
    if handler is None:
        raise ConfigurationError(f"No document handler registered for kind '{tag}'")
    return handler


def validate_registry(handlers: dict[ArtifactKind, DocumentHandler] | None = None) -> None:
    """Check that every ArtifactKind has a handler whose kind matches its key.

    Raises:
        ConfigurationError: On a missing or mismatched entry.
    """
    table = DOCUMENT_HANDLERS if handlers is None else handlers
    for kind in ArtifactKind:
        handler = table.get(kind)
        if handler is None:
            raise ConfigurationError(f"No document handler registered for kind '{kind}'")
        if handler.kind is not kind:
            raise ConfigurationError(
                f"Handler registered under '{kind}' is for kind '{handler.kind}'"
            )
