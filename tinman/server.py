"""FastAPI server exposing chat sessions as server-sent event streams.

Thin web layer over the StreamHub: it validates the request body, starts
a session, and relays session events as SSE frames. Clients that drop
their connection reconnect with the Last-Event-ID header and get a
gap-free, duplicate-free continuation.

FastAPI is imported inside create_app() so the package can be used
without it.
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx
from pydantic import ValidationError

from tinman.errors import ConfigurationError, SessionNotFoundError
from tinman.persistence.database import close_db, init_db
from tinman.persistence.documents import DocumentStore
from tinman.persistence.session import SessionStore
from tinman.prompts import render_prompt
from tinman.providers.base import GenerationProvider
from tinman.providers.registry import (
    create_provider,
    load_app_config,
    load_models,
    load_roles,
    resolve_model,
)
from tinman.schemas.config import AppConfig, ModelRole
from tinman.schemas.request import ChatRequest
from tinman.streaming.hub import ResumeResult, StreamHub, create_store
from tinman.streaming.transport import Subscriber, encode_sse
from tinman.validation.adapter import create_streaming_schema

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ModelRole], GenerationProvider]

CHAT_REQUEST_SCHEMA = create_streaming_schema(ChatRequest)


def registry_provider_factory() -> ProviderFactory:
    """Provider factory backed by models.toml."""
    registry = load_models()
    roles = load_roles()
    cache: dict[ModelRole, GenerationProvider] = {}

    def factory(role: ModelRole) -> GenerationProvider:
        if role not in cache:
            cache[role] = create_provider(resolve_model(role, registry, roles))
        return cache[role]

    return factory


def _parse_last_event_id(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        seq = int(value)
    except ValueError:
        return None
    return seq if seq >= 0 else None


def create_app(
    config: AppConfig | None = None,
    provider_factory: ProviderFactory | None = None,
    hub: StreamHub | None = None,
) -> Any:
    """Create and configure the FastAPI application.

    Args:
        config: Application settings. Loaded from defaults.toml if omitted.
        provider_factory: Maps a model role to a provider. Defaults to the
            models.toml registry.
        hub: Pre-built hub. When given, the lifespan does not open a
            database or a stream store.
    """
    try:
        from fastapi import FastAPI, Request
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse, StreamingResponse
    except ImportError as exc:
        raise ImportError(
            "The server requires FastAPI. Install with: pip install fastapi uvicorn"
        ) from exc

    app_config = config or load_app_config()
    state: dict[str, Any] = {"hub": hub, "factory": provider_factory}

    @asynccontextmanager
    async def lifespan(app: Any) -> AsyncIterator[None]:
        if state["factory"] is None:
            state["factory"] = registry_provider_factory()
        if state["hub"] is not None:
            yield
            return

        db = await init_db(app_config.stream.db_path)
        store = create_store(app_config.stream)
        async with httpx.AsyncClient(timeout=30.0) as http_client:
            state["hub"] = StreamHub(
                store,
                documents=DocumentStore(db),
                sessions=SessionStore(db),
                config=app_config,
                http_client=http_client,
            )
            logger.info("Server ready (store: %s)", app_config.stream.store_backend)
            try:
                yield
            finally:
                await state["hub"].shutdown()
                await store.close()
                await close_db(db)

    app = FastAPI(
        title="Tinman",
        description="Resumable streaming chat with live artifacts",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Session-Id"],
    )

    def _hub() -> StreamHub:
        return state["hub"]

    def _documents() -> DocumentStore | None:
        return _hub().documents

    async def _sse(source: ResumeResult) -> AsyncIterator[str]:
        try:
            async for event in source:
                yield encode_sse(event)
        finally:
            if isinstance(source, Subscriber):
                _hub().detach(source)

    def _stream_response(source: ResumeResult, session_id: str) -> Any:
        return StreamingResponse(
            _sse(source),
            media_type="text/event-stream",
            headers={
                "X-Session-Id": session_id,
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    # ── Chat ─────────────────────────────────────────────────────

    @app.post("/api/chat")
    async def start_chat(request: Request) -> Any:
        """Validate the request, start a session, and stream it."""
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse({"error": "bad_request", "issues": []}, status_code=400)

        try:
            chat = CHAT_REQUEST_SCHEMA.validate(body)
        except ValidationError as e:
            issues = [
                {"loc": [str(part) for part in error["loc"]], "msg": error["msg"]}
                for error in e.errors()
            ]
            return JSONResponse({"error": "bad_request", "issues": issues}, status_code=400)

        factory: ProviderFactory = state["factory"]
        try:
            provider = factory(ModelRole(chat.selected_chat_model))
            artifact_provider = factory(ModelRole.ARTIFACT)
            image_provider = factory(ModelRole.IMAGE)
        except ConfigurationError:
            logger.exception("Model configuration error")
            return JSONResponse({"error": "configuration"}, status_code=500)

        coordinator = _hub().start(
            chat_id=str(chat.id),
            messages=[{"role": "user", "content": chat.prompt_text()}],
            provider=provider,
            system=render_prompt("system"),
            artifact_provider=artifact_provider,
            image_provider=image_provider,
            user_id=request.headers.get("X-User-Id"),
            model=provider.model_id,
        )
        subscriber = await coordinator.attach(0)
        return _stream_response(subscriber, coordinator.session_id)

    @app.get("/api/chat/{session_id}/stream")
    async def resume_chat(request: Request, session_id: str, after: int | None = None) -> Any:
        """Resume a session after the last sequence number the client saw."""
        last_seen = _parse_last_event_id(request.headers.get("Last-Event-ID"))
        if last_seen is None:
            last_seen = after
        try:
            source = await _hub().resume(session_id, last_seen)
        except SessionNotFoundError:
            return JSONResponse({"error": "not_found"}, status_code=404)
        return _stream_response(source, session_id)

    @app.delete("/api/chat/{session_id}/stream")
    async def stop_chat(session_id: str) -> Any:
        """Stop a session hosted by this process."""
        if not _hub().stop(session_id):
            return JSONResponse({"error": "not_found"}, status_code=404)
        return {"stopped": session_id}

    # ── Documents ────────────────────────────────────────────────

    @app.get("/api/documents/{document_id}")
    async def get_document(document_id: str) -> Any:
        """Latest version of a document."""
        documents = _documents()
        document = await documents.get_document_by_id(document_id) if documents else None
        if document is None:
            return JSONResponse({"error": "not_found"}, status_code=404)
        return document.model_dump(mode="json")

    @app.get("/api/documents/{document_id}/versions")
    async def get_document_versions(document_id: str) -> Any:
        """Every version of a document, oldest first."""
        documents = _documents()
        versions = await documents.get_documents_by_id(document_id) if documents else []
        if not versions:
            return JSONResponse({"error": "not_found"}, status_code=404)
        return [document.model_dump(mode="json") for document in versions]

    # ── Health ───────────────────────────────────────────────────

    @app.get("/api/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "store": app_config.stream.store_backend.value,
            "active_sessions": len(_hub().active_sessions),
        }

    return app
