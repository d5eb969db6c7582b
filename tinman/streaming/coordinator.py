"""Per-session stream coordinator.

Drives one generation session through its lifecycle:

    initializing -> streaming -> finalizing -> completed
                              \\-> aborted

While streaming, the coordinator consumes the provider's increments
through a DeltaParser, runs tool calls as concurrent sub-tasks, and
funnels every event (its own and the tools') through a single emit path.
Emission holds one lock per session, so the order in which events are
written to the stream store is the order every live subscriber sees.

Staged documents and suggestions are written to the database only when
the session finalizes. An abort discards them.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

import httpx
from pydantic import ValidationError

from tinman.errors import ConfigurationError, HandlerError, SequenceConflictError
from tinman.parsing.delta import DeltaParser
from tinman.persistence.documents import DocumentStore
from tinman.persistence.session import SessionStore
from tinman.providers.base import GenerationProvider
from tinman.schemas.config import StreamConfig
from tinman.schemas.events import DeltaEvent, EventKind
from tinman.schemas.session import SessionRecord, SessionStatus
from tinman.schemas.streaming import ParsedFinish, ParsedText, ParsedToolCall
from tinman.streaming.store import ResumableStreamStore
from tinman.streaming.transport import Subscriber
from tinman.tools.base import Tool, ToolContext

logger = logging.getLogger(__name__)

# Client-facing error messages. Details only go to the log.
_GENERIC_ERROR = "An error occurred while generating the response. Please try again."
_STOPPED_MESSAGE = "Generation was stopped."


class CoordinatorState(StrEnum):
    """Lifecycle state of a StreamCoordinator."""

    INITIALIZING = "initializing"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (CoordinatorState.COMPLETED, CoordinatorState.ABORTED)


class StreamCoordinator:
    """Runs one generation session and fans its events out.

    Args:
        chat_id: Owning chat.
        provider: Provider for the main chat stream.
        store: Resumable stream store shared across processes.
        messages: Conversation history in chat-completion format.
        system: System prompt.
        tools: Tools the model may call, keyed by name.
        documents: Document store for finalization. None skips persistence.
        sessions: Session store. None skips session rows.
        config: Stream settings (max duration, provider timeout).
        artifact_provider: Provider used by artifact handlers. Defaults
            to ``provider``.
        image_provider: Provider used for image artifacts. Defaults to
            the artifact provider.
        user_id: Requesting user. Suggestions are only saved for a user.
        model: Model key recorded on the session row.
        session_id: Explicit session id. A new one is allocated if omitted.
        legacy_tool_schemas: Export tool parameters from the pydantic.v1 shape.
        http_client: Shared HTTP client handed to tools.
    """

    def __init__(
        self,
        *,
        chat_id: str,
        provider: GenerationProvider,
        store: ResumableStreamStore,
        messages: list[dict[str, Any]],
        system: str = "",
        tools: dict[str, Tool] | None = None,
        documents: DocumentStore | None = None,
        sessions: SessionStore | None = None,
        config: StreamConfig | None = None,
        artifact_provider: GenerationProvider | None = None,
        image_provider: GenerationProvider | None = None,
        user_id: str | None = None,
        model: str = "",
        session_id: str | None = None,
        legacy_tool_schemas: bool = True,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or StreamConfig()
        self._provider = provider
        self._store = store
        self._messages = messages
        self._system = system
        self._tools = tools or {}
        self._documents = documents
        self._sessions = sessions
        self._legacy_tool_schemas = legacy_tool_schemas

        self._record = SessionRecord(
            session_id=session_id or uuid.uuid4().hex,
            chat_id=chat_id,
            user_id=user_id,
            model=model,
            created_at=datetime.now(timezone.utc),
        )
        self._context = ToolContext(
            session_id=self._record.session_id,
            chat_id=chat_id,
            emit=self._emit_from_tool,
            provider=artifact_provider or provider,
            documents=documents,
            user_id=user_id,
            timeout=self._config.provider_timeout,
            http_client=http_client,
            image_provider=image_provider,
        )

        self._state = CoordinatorState.INITIALIZING
        self._lock = asyncio.Lock()
        self._last_seq = 0
        self._pending_append: tuple[int, asyncio.Future] | None = None
        self._subscribers: list[Subscriber] = []
        self._transcript: list[str] = []
        self._tool_tasks: set[asyncio.Task] = set()
        self._stream_task: asyncio.Task | None = None
        self._stop_requested = False
        self._failure: BaseException | None = None
        self._done = asyncio.Event()
        self._started = time.monotonic()

    # ── Properties ──────────────────────────────────────────────

    @property
    def session_id(self) -> str:
        return self._record.session_id

    @property
    def chat_id(self) -> str:
        return self._record.chat_id

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def record(self) -> SessionRecord:
        """Session record as of the last state change."""
        return self._record

    @property
    def last_sequence(self) -> int:
        return self._last_seq

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    # ── Emission ────────────────────────────────────────────────

    async def emit(self, kind: EventKind, data: dict[str, Any]) -> DeltaEvent | None:
        """Stamp, store, and broadcast one event.

        Stored kinds get the next sequence number and are appended to the
        stream store before any subscriber sees them. Transient kinds are
        broadcast only.

        Returns:
            The emitted event, or None if the session already ended.

        Raises:
            SequenceConflictError: If the store rejects the append.
        """
        async with self._lock:
            if self._state.is_terminal:
                logger.debug("Session %s ended, dropping %s event", self.session_id, kind)
                return None
            return await self._emit_locked(kind, data)

    async def _emit_from_tool(self, kind: EventKind, data: dict[str, Any]) -> None:
        await self.emit(kind, data)

    async def _emit_locked(self, kind: EventKind, data: dict[str, Any]) -> DeltaEvent:
        transient = kind.is_transient
        if not transient:
            await self._settle_append()
        seq = None if transient else self._last_seq + 1
        event = DeltaEvent(
            session_id=self.session_id, kind=kind, data=data, seq=seq, transient=transient,
        )
        if seq is not None:
            # The write outlives a cancelled emitter; _settle_append picks it up
            append = asyncio.ensure_future(self._store.append(self.session_id, event))
            self._pending_append = (seq, append)
            try:
                await asyncio.shield(append)
            except Exception:
                self._pending_append = None
                raise
            self._pending_append = None
            self._last_seq = seq
        self._broadcast(event)
        return event

    async def _settle_append(self) -> None:
        """Wait out a store append whose emitter was cancelled mid-write.

        The store may already hold the event even though the emitter never
        saw the reply, so the sequence counter follows the append's outcome.
        """
        if self._pending_append is None:
            return
        seq, append = self._pending_append
        self._pending_append = None
        try:
            await append
        except SequenceConflictError as e:
            logger.debug("Session %s: interrupted append rejected: %s", self.session_id, e)
            return
        except Exception:
            logger.exception("Session %s: interrupted append of seq %d failed", self.session_id, seq)
            return
        self._last_seq = max(self._last_seq, seq)
        logger.debug("Session %s: interrupted append of seq %d landed", self.session_id, seq)

    def _broadcast(self, event: DeltaEvent) -> None:
        for subscriber in list(self._subscribers):
            if not subscriber.deliver(event) or subscriber.closed:
                self._subscribers.remove(subscriber)

    def _close_subscribers(self) -> None:
        for subscriber in self._subscribers:
            subscriber.close()
        self._subscribers.clear()

    # ── Subscribers ─────────────────────────────────────────────

    async def attach(self, after_sequence: int | None = None) -> Subscriber:
        """Attach a subscriber, replaying stored events after ``after_sequence``.

        The replay and the registration for live events happen under the
        emission lock, so the subscriber sees every stored event exactly
        once with no gap between the two.
        """
        subscriber = Subscriber(self.session_id)
        async with self._lock:
            for event in await self._store.read_from(self.session_id, after_sequence or 0):
                subscriber.deliver(event)
            if self._state.is_terminal:
                subscriber.close()
            elif not subscriber.closed:
                self._subscribers.append(subscriber)
        logger.debug(
            "Subscriber %s attached to %s after seq %s",
            subscriber.subscriber_id, self.session_id, after_sequence or 0,
        )
        return subscriber

    def detach(self, subscriber: Subscriber) -> None:
        """Disconnect one subscriber. The session keeps running."""
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)
        subscriber.close()

    # ── Lifecycle ───────────────────────────────────────────────

    def stop(self) -> None:
        """Request an abort with reason "stopped"."""
        if self._state.is_terminal or self._stop_requested:
            return
        logger.info("Stop requested for session %s", self.session_id)
        self._stop_requested = True
        if self._stream_task is not None and not self._stream_task.done():
            self._stream_task.cancel()

    async def wait(self) -> SessionRecord:
        """Wait until the session reaches a terminal state."""
        await self._done.wait()
        return self._record

    async def run(self) -> SessionRecord:
        """Run the session to completion or abort.

        Provider failures, handler failures, timeouts, and stop requests
        all end in an aborted session with a terminal error event rather
        than an exception.

        Returns:
            The final session record.

        Raises:
            SequenceConflictError: If the session id is already registered.
            asyncio.CancelledError: If the running task itself is cancelled.
                The session is aborted first.
        """
        try:
            await self._initialize()
        except BaseException:
            self._state = CoordinatorState.ABORTED
            self._close_subscribers()
            self._done.set()
            raise

        try:
            if self._stop_requested:
                await self._abort("stopped")
                return self._record

            self._stream_task = asyncio.create_task(
                self._stream(), name=f"tinman-stream-{self.session_id}",
            )
            try:
                async with asyncio.timeout(self._config.max_duration):
                    finish_reason = await self._stream_task
            except TimeoutError:
                logger.warning(
                    "Session %s exceeded %.0fs, aborting",
                    self.session_id, self._config.max_duration,
                )
                await self._abort("timeout")
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    await self._abort("cancelled")
                    raise
                await self._abort_after_cancel()
            except SequenceConflictError as e:
                await self._fence(e)
            except Exception:
                logger.exception("Provider stream failed for session %s", self.session_id)
                await self._abort("provider")
            else:
                await self._finalize(finish_reason)
        finally:
            self._done.set()
        return self._record

    async def _initialize(self) -> None:
        await self._store.register(self.session_id, self.chat_id)
        await self._save_session()
        self._state = CoordinatorState.STREAMING
        logger.info(
            "Session %s started (chat %s, model %s)",
            self.session_id, self.chat_id, self._record.model or "-",
        )

    async def _stream(self) -> str:
        """Consume the chat stream and wait for its tool calls.

        Returns:
            The provider's finish reason.
        """
        parser = DeltaParser()
        definitions = [
            tool.definition(legacy=self._legacy_tool_schemas) for tool in self._tools.values()
        ]
        finish_reason = "stop"

        async for increment in self._provider.stream_text(
            self._messages,
            self._system,
            tools=definitions or None,
            timeout=self._config.provider_timeout,
        ):
            for parsed in parser.feed(increment):
                if isinstance(parsed, ParsedText):
                    self._transcript.append(parsed.text)
                    await self.emit(EventKind.TEXT_DELTA, {"text": parsed.text})
                elif isinstance(parsed, ParsedToolCall):
                    await self._dispatch_tool(parsed)
                elif isinstance(parsed, ParsedFinish):
                    finish_reason = parsed.reason

        if not parser.finished:
            logger.warning("Stream for session %s ended without a finish marker", self.session_id)

        # Finished tool tasks discard themselves from the set
        while self._tool_tasks:
            await asyncio.gather(*list(self._tool_tasks))
        return finish_reason

    # ── Tools ───────────────────────────────────────────────────

    async def _dispatch_tool(self, call: ParsedToolCall) -> None:
        await self.emit(EventKind.TOOL_CALL, {
            "tool_call_id": call.tool_call_id,
            "tool_name": call.tool_name,
            "input": call.arguments,
        })

        tool = self._tools.get(call.tool_name)
        if tool is None:
            logger.warning("Session %s: model called unknown tool %r", self.session_id, call.tool_name)
            await self._emit_tool_error(call, f"Unknown tool '{call.tool_name}'")
            return

        try:
            params = tool.schema.validate(call.arguments)
        except ValidationError as e:
            logger.info("Session %s: invalid input for %s: %s", self.session_id, tool.name, e)
            issues = [
                {"loc": [str(part) for part in error["loc"]], "msg": error["msg"]}
                for error in e.errors()
            ]
            await self._emit_tool_error(call, f"Invalid input for tool '{tool.name}'", issues)
            return

        task = asyncio.create_task(
            self._run_tool(tool, call, params), name=f"tinman-tool-{call.tool_call_id}",
        )
        self._tool_tasks.add(task)
        task.add_done_callback(self._tool_tasks.discard)

    async def _run_tool(self, tool: Tool, call: ParsedToolCall, params: Any) -> None:
        try:
            output = await tool.execute(params, self._context)
        except (HandlerError, ConfigurationError) as e:
            logger.error("Session %s: %s failed: %s", self.session_id, tool.name, e)
            self._fail(e)
            return
        except SequenceConflictError as e:
            self._fail(e)
            return
        except Exception as e:
            # Failures outside artifact handlers are reported to the model
            logger.warning(
                "Session %s: tool %s raised %s", self.session_id, tool.name, e, exc_info=True,
            )
            await self._emit_tool_error(call, f"Tool '{tool.name}' failed")
            return

        await self.emit(EventKind.TOOL_RESULT, {
            "tool_call_id": call.tool_call_id,
            "tool_name": call.tool_name,
            "output": output,
        })

    async def _emit_tool_error(
        self,
        call: ParsedToolCall,
        message: str,
        issues: list[dict[str, Any]] | None = None,
    ) -> None:
        await self.emit(EventKind.TOOL_ERROR, {
            "tool_call_id": call.tool_call_id,
            "tool_name": call.tool_name,
            "message": message,
            "issues": issues or [],
        })

    def _fail(self, error: BaseException) -> None:
        if self._failure is None:
            self._failure = error
        if self._stream_task is not None and not self._stream_task.done():
            self._stream_task.cancel()

    async def _cancel_tools(self) -> None:
        tasks = list(self._tool_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── Terminal transitions ────────────────────────────────────

    async def _finalize(self, finish_reason: str) -> None:
        self._state = CoordinatorState.FINALIZING
        staged = list(self._context.staged_documents)
        suggestions = list(self._context.staged_suggestions)

        if self._documents is not None:
            try:
                await self._documents.save_versions(staged, suggestions)
            except Exception:
                logger.exception("Persisting documents failed for session %s", self.session_id)
                await self._abort("persistence")
                return

        try:
            async with self._lock:
                await self._emit_locked(EventKind.FINISH, {"reason": finish_reason})
                await self._store.mark_terminal(self.session_id, SessionStatus.COMPLETED)
                self._state = CoordinatorState.COMPLETED
                self._close_subscribers()
        except SequenceConflictError as e:
            await self._fence(e)
            return

        await self._save_session(SessionStatus.COMPLETED)
        logger.info(
            "Session %s completed: %d events, %d documents, %.1fs",
            self.session_id, self._last_seq, len(staged), self._record.duration_seconds,
        )

    async def _abort_after_cancel(self) -> None:
        failure = self._failure
        if isinstance(failure, SequenceConflictError):
            await self._fence(failure)
        elif failure is not None:
            await self._abort("handler")
        elif self._stop_requested:
            await self._abort("stopped")
        else:
            await self._abort("cancelled")

    async def _abort(self, reason: str) -> None:
        self._state = CoordinatorState.FINALIZING
        await self._cancel_tools()

        discarded = len(self._context.staged_documents)
        self._context.staged_documents.clear()
        self._context.staged_suggestions.clear()
        if discarded:
            logger.info("Session %s: discarded %d staged documents", self.session_id, discarded)

        message = _STOPPED_MESSAGE if reason == "stopped" else _GENERIC_ERROR
        try:
            async with self._lock:
                await self._emit_locked(EventKind.ERROR, {"message": message, "reason": reason})
                await self._store.mark_terminal(self.session_id, SessionStatus.ABORTED)
                self._state = CoordinatorState.ABORTED
                self._close_subscribers()
        except SequenceConflictError as e:
            await self._fence(e)
            return

        await self._save_session(SessionStatus.ABORTED, reason)
        logger.info("Session %s aborted (%s)", self.session_id, reason)

    async def _fence(self, error: SequenceConflictError) -> None:
        """Stop producing after the store rejected an append.

        Another writer owns the stored log, so nothing more is written to
        the store or the database. Local subscribers get a transient error.
        """
        logger.error("Session %s fenced off: %s", self.session_id, error)
        logger.error(
            "Session %s keeps an active store record until it expires in %ds; "
            "followers in other processes wait until then",
            self.session_id, self._config.retention_seconds,
        )
        await self._cancel_tools()
        await self._settle_append()
        self._context.staged_documents.clear()
        self._context.staged_suggestions.clear()

        async with self._lock:
            self._state = CoordinatorState.ABORTED
            self._broadcast(DeltaEvent(
                session_id=self.session_id,
                kind=EventKind.ERROR,
                data={"message": _GENERIC_ERROR, "reason": "conflict"},
                transient=True,
            ))
            self._close_subscribers()
        self._record = self._record.model_copy(update={
            "status": SessionStatus.ABORTED,
            "abort_reason": "conflict",
        })

    async def _save_session(
        self,
        status: SessionStatus = SessionStatus.ACTIVE,
        reason: str = "",
    ) -> None:
        update: dict[str, Any] = {
            "status": status,
            "transcript": "".join(self._transcript),
            "event_count": self._last_seq,
            "abort_reason": reason,
            "duration_seconds": round(time.monotonic() - self._started, 3),
        }
        if status.is_terminal:
            update["completed_at"] = datetime.now(timezone.utc)
        self._record = self._record.model_copy(update=update)
        if self._sessions is not None:
            await self._sessions.save_session(self._record)
