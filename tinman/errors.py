"""Exception hierarchy for the streaming core."""

from __future__ import annotations


class TinmanError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(TinmanError):
    """Raised for deployment-time mistakes such as an unregistered artifact kind."""


class ProviderError(TinmanError):
    """Raised when the upstream generation call fails after all retries."""


class HandlerError(TinmanError):
    """Raised when an artifact handler fails while building a document."""

    def __init__(self, kind: str, document_id: str, cause: BaseException) -> None:
        super().__init__(f"{kind} handler failed for document {document_id}: {cause}")
        self.kind = kind
        self.document_id = document_id
        self.cause = cause


class SequenceConflictError(TinmanError):
    """Raised by a stream store when an append would break contiguity.

    Also raised when appending to a session that already has a terminal
    record. Either case means another writer owns the session or the log
    is corrupt, so the current coordinator must stop producing.
    """

    def __init__(self, session_id: str, expected: int, received: int | None) -> None:
        super().__init__(
            f"Sequence conflict on session {session_id}: "
            f"expected {expected}, got {received}"
        )
        self.session_id = session_id
        self.expected = expected
        self.received = received


class SessionNotFoundError(TinmanError):
    """Raised when resuming a session that is unknown or has expired."""
