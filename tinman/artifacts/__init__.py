"""Artifact kinds and their document handlers."""

from tinman.artifacts.base import ArtifactSink, DocumentHandler
from tinman.artifacts.registry import (
    ARTIFACT_KINDS,
    DOCUMENT_HANDLERS,
    get_document_handler,
    validate_registry,
)

__all__ = [
    "ARTIFACT_KINDS",
    "DOCUMENT_HANDLERS",
    "ArtifactSink",
    "DocumentHandler",
    "get_document_handler",
    "validate_registry",
]
