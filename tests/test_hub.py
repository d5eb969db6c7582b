"""Tests for tinman.streaming.hub — session registry and resumption."""

from __future__ import annotations

import asyncio

import pytest

from tinman.errors import SessionNotFoundError
from tinman.providers.scripted import ScriptedProvider
from tinman.schemas.config import AppConfig, StoreBackend, StreamConfig, ValidationConfig
from tinman.schemas.events import DeltaEvent, EventKind
from tinman.schemas.session import SessionStatus
from tinman.schemas.streaming import FinishIncrement, TextIncrement
from tinman.streaming.hub import StoreFollower, StreamHub, create_store
from tinman.streaming.redis_store import RedisStreamStore
from tinman.streaming.store import InMemoryStreamStore
from tinman.streaming.transport import StreamSnapshot, Subscriber


def _make_config(**stream) -> AppConfig:
    return AppConfig(
        stream=StreamConfig(store_backend=StoreBackend.MEMORY, poll_interval=0.01, **stream),
        validation=ValidationConfig(legacy_tool_schemas=False),
    )


def _make_hub(store: InMemoryStreamStore | None = None, **stream) -> StreamHub:
    return StreamHub(store or InMemoryStreamStore(), config=_make_config(**stream))


def _slow_provider(parts: int = 40, delay: float = 0.01) -> ScriptedProvider:
    script = [TextIncrement(text=f"{i} ") for i in range(parts)] + [FinishIncrement()]
    return ScriptedProvider([script], delay=delay)


def _quick_provider() -> ScriptedProvider:
    return ScriptedProvider([[TextIncrement(text="Hi"), FinishIncrement()]])


# ── create_store ──────────────────────────────────────────────────


class TestCreateStore:
    def test_memory(self):
        store = create_store(StreamConfig(store_backend=StoreBackend.MEMORY))
        assert isinstance(store, InMemoryStreamStore)

    def test_redis(self):
        store = create_store(StreamConfig(redis_url="redis://localhost:6379/3"))
        assert isinstance(store, RedisStreamStore)


# ── Lifecycle ─────────────────────────────────────────────────────


class TestStartAndWait:
    @pytest.mark.asyncio
    async def test_session_is_tracked_until_done(self):
        hub = _make_hub()
        coordinator = hub.start(chat_id="c1", messages=[], provider=_quick_provider())
        sid = coordinator.session_id
        assert hub.active_sessions == [sid]
        assert hub.get(sid) is coordinator

        await hub.wait(sid)
        assert hub.active_sessions == []
        assert await hub.store.get_status(sid) is SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_explicit_session_id(self):
        hub = _make_hub()
        coordinator = hub.start(
            chat_id="c1", messages=[], provider=_quick_provider(), session_id="fixed",
        )
        assert coordinator.session_id == "fixed"
        await hub.wait("fixed")

    @pytest.mark.asyncio
    async def test_stop(self):
        hub = _make_hub()
        sid = hub.start(chat_id="c1", messages=[], provider=_slow_provider()).session_id
        await asyncio.sleep(0.03)
        assert hub.stop(sid)
        await hub.wait(sid)
        events = await hub.store.read_from(sid)
        assert events[-1].data["reason"] == "stopped"
        assert not hub.stop(sid)

    @pytest.mark.asyncio
    async def test_shutdown_stops_everything(self):
        hub = _make_hub()
        ids = [
            hub.start(chat_id="c1", messages=[], provider=_slow_provider()).session_id
            for _ in range(3)
        ]
        await asyncio.sleep(0.02)
        await hub.shutdown()
        assert hub.active_sessions == []
        for sid in ids:
            assert await hub.store.get_status(sid) is SessionStatus.ABORTED

    @pytest.mark.asyncio
    async def test_duplicate_session_is_logged_not_raised(self):
        store = InMemoryStreamStore()
        await store.register("taken", "c0")
        hub = _make_hub(store)
        hub.start(chat_id="c1", messages=[], provider=_quick_provider(), session_id="taken")
        await hub.wait("taken")
        assert hub.active_sessions == []


# ── Resume ────────────────────────────────────────────────────────


class TestResume:
    @pytest.mark.asyncio
    async def test_local_session_gets_live_subscriber(self):
        hub = _make_hub()
        sid = hub.start(chat_id="c1", messages=[], provider=_slow_provider(parts=5)).session_id
        await asyncio.sleep(0.03)

        resumed = await hub.resume(sid, 1)
        assert isinstance(resumed, Subscriber)
        events = await resumed.collect()
        assert events[0].seq == 2
        assert events[-1].kind is EventKind.FINISH
        seqs = [e.seq for e in events]
        assert seqs == list(range(2, 2 + len(seqs)))

    @pytest.mark.asyncio
    async def test_finished_session_gets_snapshot(self):
        hub = _make_hub()
        sid = hub.start(chat_id="c1", messages=[], provider=_quick_provider()).session_id
        await hub.wait(sid)

        resumed = await hub.resume(sid, 1)
        assert isinstance(resumed, StreamSnapshot)
        assert resumed.status is SessionStatus.COMPLETED
        assert [e.kind async for e in resumed] == [EventKind.FINISH]

    @pytest.mark.asyncio
    async def test_unknown_session(self):
        hub = _make_hub()
        with pytest.raises(SessionNotFoundError):
            await hub.resume("nope")

    @pytest.mark.asyncio
    async def test_remote_session_is_followed(self):
        store = InMemoryStreamStore()
        await store.register("remote", "c1")
        await store.append("remote", DeltaEvent(
            session_id="remote", kind=EventKind.TEXT_DELTA, data={"text": "a"}, seq=1,
        ))
        hub = _make_hub(store)

        resumed = await hub.resume("remote")
        assert isinstance(resumed, StoreFollower)

        async def finish_elsewhere():
            await asyncio.sleep(0.03)
            await store.append("remote", DeltaEvent(
                session_id="remote", kind=EventKind.FINISH, data={"reason": "stop"}, seq=2,
            ))
            await store.mark_terminal("remote", SessionStatus.COMPLETED)

        producer = asyncio.create_task(finish_elsewhere())
        seen = [e.seq async for e in resumed]
        await producer
        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_detach_unknown_subscriber_closes_it(self):
        hub = _make_hub()
        subscriber = Subscriber("ghost")
        hub.detach(subscriber)
        assert subscriber.closed
