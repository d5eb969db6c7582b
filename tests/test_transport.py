"""Tests for tinman.streaming.transport — subscribers and SSE framing."""

from __future__ import annotations

import json

import pytest

from tinman.schemas.events import DeltaEvent, EventKind
from tinman.schemas.session import SessionStatus
from tinman.streaming.transport import StreamSnapshot, Subscriber, encode_sse


def _make_event(kind: EventKind = EventKind.TEXT_DELTA, seq: int | None = 1, **data) -> DeltaEvent:
    return DeltaEvent(
        session_id="s1", kind=kind, data=data, seq=seq, transient=seq is None,
    )


class TestSubscriber:
    @pytest.mark.asyncio
    async def test_terminal_event_ends_iteration(self):
        sub = Subscriber("s1")
        sub.deliver(_make_event(text="a"))
        sub.deliver(_make_event(EventKind.FINISH, seq=2, reason="stop"))
        events = await sub.collect()
        assert [e.kind for e in events] == [EventKind.TEXT_DELTA, EventKind.FINISH]
        assert sub.closed
        assert sub.last_seq == 2

    @pytest.mark.asyncio
    async def test_close_keeps_queued_events(self):
        sub = Subscriber("s1")
        sub.deliver(_make_event(text="a"))
        sub.close()
        assert len(await sub.collect()) == 1

    def test_deliver_after_close_is_refused(self):
        sub = Subscriber("s1")
        sub.close()
        assert not sub.deliver(_make_event())

    def test_transient_event_keeps_last_seq(self):
        sub = Subscriber("s1")
        sub.deliver(_make_event(seq=4))
        sub.deliver(_make_event(EventKind.TOOL_CALL, seq=None))
        assert sub.last_seq == 4

    def test_close_twice(self):
        sub = Subscriber("s1", subscriber_id="abc")
        sub.close()
        sub.close()
        assert sub.closed
        assert sub.subscriber_id == "abc"


class TestStreamSnapshot:
    @pytest.mark.asyncio
    async def test_iterates_events(self):
        events = [_make_event(seq=1), _make_event(EventKind.FINISH, seq=2)]
        snapshot = StreamSnapshot("s1", SessionStatus.COMPLETED, events)
        assert [e async for e in snapshot] == events


class TestEncodeSse:
    def test_stored_event_carries_id(self):
        frame = encode_sse(_make_event(seq=7, text="hi"))
        lines = frame.strip().split("\n")
        assert lines[0] == "id: 7"
        assert lines[1] == "event: text-delta"
        payload = json.loads(lines[2].removeprefix("data: "))
        assert payload == {"type": "text-delta", "data": {"text": "hi"}, "transient": False}
        assert frame.endswith("\n\n")

    def test_transient_event_has_no_id(self):
        frame = encode_sse(_make_event(EventKind.TOOL_RESULT, seq=None))
        assert not frame.startswith("id:")
        assert '"transient": true' in frame
