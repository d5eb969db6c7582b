"""Process-wide registry of running sessions.

The hub starts coordinators as background tasks, keeps the ones hosted in
this process addressable by session id, and answers resumption requests
for any session the shared stream store knows about.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from tinman.artifacts.registry import validate_registry
from tinman.errors import SessionNotFoundError
from tinman.persistence.documents import DocumentStore
from tinman.persistence.session import SessionStore
from tinman.providers.base import GenerationProvider
from tinman.schemas.config import AppConfig, StoreBackend, StreamConfig
from tinman.schemas.events import DeltaEvent
from tinman.streaming.coordinator import StreamCoordinator
from tinman.streaming.store import InMemoryStreamStore, ResumableStreamStore
from tinman.streaming.transport import StreamSnapshot, Subscriber
from tinman.tools import Tool, default_tools

logger = logging.getLogger(__name__)


def create_store(config: StreamConfig) -> ResumableStreamStore:
    """Build the stream store selected by the configuration."""
    if config.store_backend is StoreBackend.MEMORY:
        return InMemoryStreamStore(retention_seconds=config.retention_seconds)

    from tinman.streaming.redis_store import RedisStreamStore

    return RedisStreamStore.from_url(
        config.redis_url,
        prefix=config.key_prefix,
        retention_seconds=config.retention_seconds,
    )


class StoreFollower:
    """Follows a session that is streaming in another process.

    Polls the shared store for new events until the session ends.
    """

    def __init__(
        self,
        store: ResumableStreamStore,
        session_id: str,
        after_sequence: int = 0,
        *,
        poll_interval: float = 0.25,
    ) -> None:
        self.session_id = session_id
        self.after_sequence = after_sequence
        self._store = store
        self._poll_interval = poll_interval

    def __aiter__(self) -> AsyncIterator[DeltaEvent]:
        return self._store.follow(
            self.session_id, self.after_sequence, poll_interval=self._poll_interval,
        )


ResumeResult = Subscriber | StreamSnapshot | StoreFollower


class StreamHub:
    """Starts, tracks, stops, and resumes sessions for one process.

    Args:
        store: Shared resumable stream store.
        documents: Document store, or None to skip persistence.
        sessions: Session store, or None to skip session rows.
        config: Application settings.
        tools: Tools offered to the model. Defaults to default_tools().
        http_client: Shared HTTP client handed to tools.

    Raises:
        ConfigurationError: If an artifact kind has no handler.
    """

    def __init__(
        self,
        store: ResumableStreamStore,
        *,
        documents: DocumentStore | None = None,
        sessions: SessionStore | None = None,
        config: AppConfig | None = None,
        tools: dict[str, Tool] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        validate_registry()
        self._store = store
        self._documents = documents
        self._sessions = sessions
        self._config = config or AppConfig()
        self._tools = default_tools() if tools is None else tools
        self._http_client = http_client
        self._coordinators: dict[str, StreamCoordinator] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def store(self) -> ResumableStreamStore:
        return self._store

    @property
    def documents(self) -> DocumentStore | None:
        return self._documents

    @property
    def active_sessions(self) -> list[str]:
        """Ids of sessions currently hosted by this process."""
        return list(self._coordinators)

    def get(self, session_id: str) -> StreamCoordinator | None:
        return self._coordinators.get(session_id)

    def start(
        self,
        *,
        chat_id: str,
        messages: list[dict[str, Any]],
        provider: GenerationProvider,
        system: str = "",
        artifact_provider: GenerationProvider | None = None,
        image_provider: GenerationProvider | None = None,
        user_id: str | None = None,
        model: str = "",
        session_id: str | None = None,
    ) -> StreamCoordinator:
        """Create a coordinator and run it as a background task.

        Subscribers may attach to the returned coordinator right away;
        they receive every event from sequence 1.
        """
        coordinator = StreamCoordinator(
            chat_id=chat_id,
            provider=provider,
            store=self._store,
            messages=messages,
            system=system,
            tools=self._tools,
            documents=self._documents,
            sessions=self._sessions,
            config=self._config.stream,
            artifact_provider=artifact_provider,
            image_provider=image_provider,
            user_id=user_id,
            model=model,
            session_id=session_id,
            legacy_tool_schemas=self._config.validation.legacy_tool_schemas,
            http_client=self._http_client,
        )
        sid = coordinator.session_id
        self._coordinators[sid] = coordinator
        self._tasks[sid] = asyncio.create_task(self._run(coordinator), name=f"tinman-session-{sid}")
        return coordinator

    async def _run(self, coordinator: StreamCoordinator) -> None:
        sid = coordinator.session_id
        try:
            await coordinator.run()
        except asyncio.CancelledError:
            logger.info("Session %s cancelled", sid)
        except Exception:
            logger.exception("Session %s failed outside its lifecycle", sid)
        finally:
            self._coordinators.pop(sid, None)
            self._tasks.pop(sid, None)

    async def resume(self, session_id: str, last_seen: int | None = None) -> ResumeResult:
        """Reconnect a client to a session.

        Args:
            session_id: Session to resume.
            last_seen: Last sequence number the client received, or None
                to replay from the start.

        Returns:
            A live Subscriber if the session runs in this process, a
            StreamSnapshot if it already ended, or a StoreFollower if it
            is streaming in another process.

        Raises:
            SessionNotFoundError: If the session is unknown or expired.
        """
        after = last_seen or 0
        coordinator = self._coordinators.get(session_id)
        if coordinator is not None:
            return await coordinator.attach(after)

        status = await self._store.get_status(session_id)
        if status is None:
            raise SessionNotFoundError(session_id)
        if status.is_terminal:
            events = await self._store.read_from(session_id, after)
            return StreamSnapshot(session_id, status, events)

        logger.debug("Session %s is hosted elsewhere, following the store", session_id)
        return StoreFollower(
            self._store, session_id, after, poll_interval=self._config.stream.poll_interval,
        )

    def detach(self, subscriber: Subscriber) -> None:
        """Disconnect a live subscriber. The session keeps running."""
        coordinator = self._coordinators.get(subscriber.session_id)
        if coordinator is not None:
            coordinator.detach(subscriber)
        else:
            subscriber.close()

    def stop(self, session_id: str) -> bool:
        """Stop a session hosted in this process.

        Returns:
            False if the session is not running here.
        """
        coordinator = self._coordinators.get(session_id)
        if coordinator is None:
            return False
        coordinator.stop()
        return True

    async def wait(self, session_id: str) -> None:
        """Wait for a locally hosted session to finish."""
        task = self._tasks.get(session_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop every local session and wait for them to end."""
        for coordinator in list(self._coordinators.values()):
            coordinator.stop()
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Stream hub shut down (%d sessions stopped)", len(tasks))
