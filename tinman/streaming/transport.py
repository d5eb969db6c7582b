"""Subscriber transports for session events.

A Subscriber is the in-process sink one client reads from. The coordinator
pushes events into it without ever waiting on the reader, so a slow or
vanished client cannot stall a session. The web layer turns the events
into server-sent events with encode_sse().
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator

from tinman.schemas.events import DeltaEvent
from tinman.schemas.session import SessionStatus

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscriber:
    """Queue-backed, async-iterable sink for one client.

    Iteration ends after a terminal event (finish or error) or when the
    subscriber is closed.
    """

    def __init__(self, session_id: str, subscriber_id: str | None = None) -> None:
        self.session_id = session_id
        self.subscriber_id = subscriber_id or uuid.uuid4().hex[:8]
        self.last_seq = 0
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: DeltaEvent) -> bool:
        """Queue an event for the reader.

        Returns:
            False if the subscriber is already closed and the event was
            not queued.
        """
        if self._closed:
            return False
        if event.seq is not None:
            self.last_seq = event.seq
        self._queue.put_nowait(event)
        if event.kind.is_terminal:
            self.close()
        return True

    def close(self) -> None:
        """Stop accepting events. Queued events remain readable."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[DeltaEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[DeltaEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]

    async def collect(self) -> list[DeltaEvent]:
        """Read until the stream ends and return everything received."""
        return [event async for event in self]


class StreamSnapshot:
    """Final stored events of a session that already reached a terminal state."""

    def __init__(self, session_id: str, status: SessionStatus, events: list[DeltaEvent]) -> None:
        self.session_id = session_id
        self.status = status
        self.events = events

    def __aiter__(self) -> AsyncIterator[DeltaEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[DeltaEvent]:
        for event in self.events:
            yield event


def encode_sse(event: DeltaEvent) -> str:
    """Encode an event as one server-sent-events frame.

    Stored events carry their sequence number as the SSE id so a browser
    reconnect sends it back in Last-Event-ID.
    """
    payload = {"type": event.kind.value, "data": event.data, "transient": event.transient}
    lines = []
    if event.seq is not None:
        lines.append(f"id: {event.seq}")
    lines.append(f"event: {event.kind.value}")
    lines.append(f"data: {json.dumps(payload, default=str)}")
    return "\n".join(lines) + "\n\n"
