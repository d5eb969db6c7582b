"""Resumable stream store contract and the in-memory implementation.

The store is an append-only log of a session's non-transient events,
keyed by session id, plus a small metadata record holding the session's
status. It is the only state shared across server processes.

Appends must be contiguous: an event is accepted only if its sequence
number is exactly one past the last stored one and the session has no
terminal record yet. A rejected append raises SequenceConflictError,
which fences off a second coordinator writing the same session.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

from tinman.errors import SequenceConflictError, SessionNotFoundError
from tinman.schemas.events import DeltaEvent
from tinman.schemas.session import SessionStatus

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 86400


class ResumableStreamStore(ABC):
    """Durable, TTL-bounded append log keyed by session id."""

    # ── Abstract interface ──────────────────────────────────────

    @abstractmethod
    async def register(self, session_id: str, chat_id: str) -> None:
        """Create the metadata record for a new active session.

        Raises:
            SequenceConflictError: If the session is already registered.
        """
        ...

    @abstractmethod
    async def append(self, session_id: str, event: DeltaEvent) -> None:
        """Append one stored event.

        Raises:
            ValueError: If the event is transient or has no sequence number.
            SequenceConflictError: If the sequence is not last + 1 or the
                session is already terminal.
        """
        ...

    @abstractmethod
    async def read_from(self, session_id: str, after_sequence: int = 0) -> list[DeltaEvent]:
        """Return every stored event with seq > after_sequence, in order."""
        ...

    @abstractmethod
    async def get_status(self, session_id: str) -> SessionStatus | None:
        """Return the session's status, or None if unknown or expired."""
        ...

    @abstractmethod
    async def mark_terminal(self, session_id: str, status: SessionStatus) -> None:
        """Write the terminal record. The first terminal status wins."""
        ...

    @abstractmethod
    async def last_sequence(self, session_id: str) -> int:
        """Sequence number of the last stored event (0 if none)."""
        ...

    # ── Derived operations ──────────────────────────────────────

    async def is_terminal(self, session_id: str) -> bool:
        """Whether the session has a terminal record."""
        status = await self.get_status(session_id)
        return status is not None and status.is_terminal

    async def exists(self, session_id: str) -> bool:
        return await self.get_status(session_id) is not None

    async def follow(
        self,
        session_id: str,
        after_sequence: int = 0,
        *,
        poll_interval: float = 0.25,
    ) -> AsyncIterator[DeltaEvent]:
        """Yield stored events as they arrive until the session ends.

        Used by processes that do not host the session's coordinator.
        A session whose coordinator was fenced off never gets a terminal
        record, so following it ends only when its keys expire.

        Raises:
            SessionNotFoundError: If the session expires while following.
        """
        last = after_sequence
        while True:
            events = await self.read_from(session_id, last)
            for event in events:
                last = event.seq or last
                yield event
            if events and events[-1].kind.is_terminal:
                return

            status = await self.get_status(session_id)
            if status is None:
                raise SessionNotFoundError(session_id)
            if status.is_terminal:
                for event in await self.read_from(session_id, last):
                    last = event.seq or last
                    yield event
                return
            await asyncio.sleep(poll_interval)

    async def close(self) -> None:
        """Release backend resources."""
        return None

    @staticmethod
    def _check_storable(event: DeltaEvent) -> int:
        if event.transient:
            raise ValueError(f"Transient {event.kind} events are never stored")
        if event.seq is None:
            raise ValueError("Stored events need a sequence number")
        return event.seq


@dataclass
class _Entry:
    chat_id: str
    status: SessionStatus
    expires_at: float
    events: list[DeltaEvent] = field(default_factory=list)


class InMemoryStreamStore(ResumableStreamStore):
    """Single-process store for tests, the demo, and Redis-less deployments."""

    def __init__(
        self,
        retention_seconds: int = DEFAULT_RETENTION,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._retention = retention_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def _get(self, session_id: str) -> _Entry | None:
        entry = self._entries.get(session_id)
        if entry is not None and entry.expires_at <= self._clock():
            del self._entries[session_id]
            logger.debug("Stream %s expired", session_id)
            return None
        return entry

    def _touch(self, entry: _Entry) -> None:
        entry.expires_at = self._clock() + self._retention

    async def register(self, session_id: str, chat_id: str) -> None:
        entry = self._get(session_id)
        if entry is not None:
            raise SequenceConflictError(session_id, len(entry.events) + 1, None)
        self._entries[session_id] = _Entry(
            chat_id=chat_id,
            status=SessionStatus.ACTIVE,
            expires_at=self._clock() + self._retention,
        )

    async def append(self, session_id: str, event: DeltaEvent) -> None:
        seq = self._check_storable(event)
        entry = self._get(session_id)
        if entry is None:
            entry = _Entry(chat_id="", status=SessionStatus.ACTIVE, expires_at=0.0)
            self._entries[session_id] = entry
        expected = len(entry.events) + 1
        if entry.status.is_terminal or seq != expected:
            raise SequenceConflictError(session_id, expected, seq)
        entry.events.append(event)
        self._touch(entry)

    async def read_from(self, session_id: str, after_sequence: int = 0) -> list[DeltaEvent]:
        entry = self._get(session_id)
        if entry is None:
            return []
        return list(entry.events[max(after_sequence, 0):])

    async def get_status(self, session_id: str) -> SessionStatus | None:
        entry = self._get(session_id)
        return entry.status if entry else None

    async def mark_terminal(self, session_id: str, status: SessionStatus) -> None:
        if not status.is_terminal:
            raise ValueError(f"{status} is not a terminal status")
        entry = self._get(session_id)
        if entry is None:
            entry = _Entry(chat_id="", status=status, expires_at=0.0)
            self._entries[session_id] = entry
        elif entry.status.is_terminal:
            return
        entry.status = status
        self._touch(entry)

    async def last_sequence(self, session_id: str) -> int:
        entry = self._get(session_id)
        return len(entry.events) if entry else 0
