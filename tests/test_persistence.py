"""Tests for document, suggestion, and session persistence.

Covers database initialization, version-stacked document saves,
suggestion storage, and SessionStore CRUD and listing.
"""

from __future__ import annotations

from datetime import UTC, datetime

import aiosqlite
import pytest
import pytest_asyncio

from tinman.persistence.database import close_db, init_db
from tinman.persistence.documents import DocumentStore
from tinman.persistence.session import SessionStore
from tinman.schemas.documents import ArtifactKind, Document, Suggestion
from tinman.schemas.session import SessionQuery, SessionRecord, SessionStatus

# ── Factories ──────────────────────────────────────────────────────


def _make_document(
    document_id: str = "doc-1",
    content: str = "print(1)",
    version: int = 1,
    **overrides,
) -> Document:
    defaults = {
        "id": document_id,
        "kind": ArtifactKind.CODE,
        "title": "demo",
        "content": content,
        "version": version,
        "chat_id": "chat-1",
        "session_id": "session-1",
    }
    defaults.update(overrides)
    return Document(**defaults)


def _make_suggestion(document_id: str = "doc-1", version: int = 1) -> Suggestion:
    return Suggestion(
        document_id=document_id,
        document_version=version,
        original_sentence="The cat sat.",
        suggested_sentence="The cat sat down.",
        user_id="u1",
    )


def _make_record(
    session_id: str = "abcd1234",
    status: SessionStatus = SessionStatus.COMPLETED,
    **overrides,
) -> SessionRecord:
    defaults = {
        "session_id": session_id,
        "chat_id": "chat-1",
        "user_id": "u1",
        "model": "anthropic/claude-sonnet",
        "status": status,
        "created_at": datetime(2026, 3, 1, 10, 0, 0, tzinfo=UTC),
        "completed_at": datetime(2026, 3, 1, 10, 0, 5, tzinfo=UTC),
        "transcript": "Hello",
        "event_count": 5,
        "duration_seconds": 5.0,
    }
    defaults.update(overrides)
    return SessionRecord(**defaults)


@pytest_asyncio.fixture
async def db(tmp_path):
    connection = await init_db(str(tmp_path / "test.db"))
    yield connection
    await close_db(connection)


# ── Database Initialization Tests ─────────────────────────────────


@pytest.mark.asyncio
async def test_init_db_creates_tables(tmp_path):
    """init_db creates the sessions, documents, and suggestions tables."""
    db = await init_db(str(tmp_path / "nested" / "test.db"))

    async with db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    ) as cursor:
        tables = [row[0] for row in await cursor.fetchall()]

    assert tables == ["documents", "sessions", "suggestions"]
    await close_db(db)


@pytest.mark.asyncio
async def test_init_db_is_idempotent(tmp_path):
    """Running init_db twice on one file keeps existing rows."""
    path = str(tmp_path / "test.db")
    db = await init_db(path)
    await DocumentStore(db).save_document(_make_document())
    await close_db(db)

    db = await init_db(path)
    assert await DocumentStore(db).get_document_by_id("doc-1") is not None
    await close_db(db)


# ── Document Tests ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_save_and_get_document(db):
    """A saved document round-trips with every field."""
    store = DocumentStore(db)
    await store.save_document(_make_document(user_id="u1"))

    document = await store.get_document_by_id("doc-1")
    assert document.kind is ArtifactKind.CODE
    assert document.content == "print(1)"
    assert document.user_id == "u1"
    assert document.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_missing_document(db):
    """get_document_by_id returns None for an unknown id."""
    assert await DocumentStore(db).get_document_by_id("nope") is None


@pytest.mark.asyncio
async def test_duplicate_version_rejected(db):
    """The same (id, version) cannot be inserted twice."""
    store = DocumentStore(db)
    await store.save_document(_make_document())
    with pytest.raises(aiosqlite.IntegrityError):
        await store.save_document(_make_document(content="other"))


@pytest.mark.asyncio
async def test_save_versions_stacks(db):
    """Two staged versions of one document become versions 1 and 2."""
    store = DocumentStore(db)
    saved = await store.save_versions([
        _make_document(content="print(1)", version=1),
        _make_document(content="print(2)", version=1),
    ])

    assert [d.version for d in saved] == [1, 2]
    assert (await store.get_document_by_id("doc-1")).content == "print(2)"
    versions = await store.get_documents_by_id("doc-1")
    assert [d.content for d in versions] == ["print(1)", "print(2)"]


@pytest.mark.asyncio
async def test_save_versions_continues_existing(db):
    """An update of a stored document gets the next version number."""
    store = DocumentStore(db)
    await store.save_document(_make_document())
    [saved] = await store.save_versions([_make_document(content="v2", version=2)])
    assert saved.version == 2
    assert await store.next_version("doc-1") == 3


@pytest.mark.asyncio
async def test_save_versions_empty(db):
    """Saving no documents is a no-op."""
    assert await DocumentStore(db).save_versions([]) == []


@pytest.mark.asyncio
async def test_documents_by_session(db):
    """get_documents_by_session only returns that session's rows."""
    store = DocumentStore(db)
    await store.save_versions([
        _make_document("doc-1"),
        _make_document("doc-2", session_id="session-2"),
    ])
    documents = await store.get_documents_by_session("session-1")
    assert [d.id for d in documents] == ["doc-1"]


@pytest.mark.asyncio
async def test_concurrent_updates_repoint_suggestions(db):
    """Suggestions follow their document when a racing update takes its version."""
    store = DocumentStore(db)
    await store.save_document(_make_document(content="base"))
    # Two sessions both staged an update of v1 as v2
    await store.save_versions([_make_document(content="first update", version=2)])
    [saved] = await store.save_versions(
        [_make_document(content="second update", version=2, session_id="session-2")],
        [_make_suggestion(version=2)],
    )

    assert saved.version == 3
    [suggestion] = await store.get_suggestions_by_document_id("doc-1")
    assert suggestion.document_version == 3
    versions = {d.version: d.content for d in await store.get_documents_by_id("doc-1")}
    assert versions[suggestion.document_version] == "second update"


@pytest.mark.asyncio
async def test_suggestion_on_stored_version_keeps_version(db):
    """A suggestion for a version not saved in this batch is left as is."""
    store = DocumentStore(db)
    await store.save_document(_make_document())
    await store.save_versions([], [_make_suggestion(version=1)])
    [suggestion] = await store.get_suggestions_by_document_id("doc-1")
    assert suggestion.document_version == 1


@pytest.mark.asyncio
async def test_save_versions_is_atomic_with_suggestions(db):
    """A failing suggestion insert leaves no document version behind."""
    store = DocumentStore(db)
    with pytest.raises(aiosqlite.IntegrityError):
        await store.save_versions(
            [_make_document()],
            [_make_suggestion(document_id="ghost")],
        )
    assert await store.get_documents_by_id("doc-1") == []


# ── Suggestion Tests ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_save_and_get_suggestions(db):
    """Suggestions round-trip and attach to their document version."""
    store = DocumentStore(db)
    await store.save_document(_make_document())
    await store.save_suggestions([_make_suggestion(), _make_suggestion()])

    suggestions = await store.get_suggestions_by_document_id("doc-1")
    assert len(suggestions) == 2
    assert suggestions[0].suggested_sentence == "The cat sat down."
    assert not suggestions[0].is_resolved


@pytest.mark.asyncio
async def test_suggestion_requires_document_version(db):
    """Foreign keys reject a suggestion for a version that does not exist."""
    with pytest.raises(aiosqlite.IntegrityError):
        await DocumentStore(db).save_suggestions([_make_suggestion(version=3)])


@pytest.mark.asyncio
async def test_save_no_suggestions(db):
    """An empty batch writes nothing."""
    store = DocumentStore(db)
    await store.save_suggestions([])
    assert await store.get_suggestions_by_document_id("doc-1") == []


# ── Session Tests ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_save_and_get_session(db):
    """A saved session round-trips."""
    store = SessionStore(db)
    await store.save_session(_make_record())

    record = await store.get_session("abcd1234")
    assert record.status is SessionStatus.COMPLETED
    assert record.event_count == 5
    assert record.completed_at == datetime(2026, 3, 1, 10, 0, 5, tzinfo=UTC)


@pytest.mark.asyncio
async def test_save_session_replaces_row(db):
    """Saving the same session id again updates the row."""
    store = SessionStore(db)
    await store.save_session(_make_record(status=SessionStatus.ACTIVE, completed_at=None))
    await store.save_session(_make_record(status=SessionStatus.ABORTED, abort_reason="timeout"))

    record = await store.get_session("abcd1234")
    assert record.status is SessionStatus.ABORTED
    assert record.abort_reason == "timeout"


@pytest.mark.asyncio
async def test_get_session_by_prefix(db):
    """A unique prefix of at least 4 characters finds the session."""
    store = SessionStore(db)
    await store.save_session(_make_record("abcd1234"))
    await store.save_session(_make_record("abcd9999"))
    await store.save_session(_make_record("wxyz0000"))

    assert (await store.get_session("wxyz")).session_id == "wxyz0000"
    assert await store.get_session("abcd") is None
    assert await store.get_session("wx") is None


@pytest.mark.asyncio
async def test_list_sessions_filters(db):
    """list_sessions filters by chat and status, newest first."""
    store = SessionStore(db)
    await store.save_session(_make_record(
        "s-old", created_at=datetime(2026, 1, 1, tzinfo=UTC),
    ))
    await store.save_session(_make_record("s-new"))
    await store.save_session(_make_record("s-other", chat_id="chat-2"))
    await store.save_session(_make_record("s-aborted", status=SessionStatus.ABORTED))

    everything = await store.list_sessions(SessionQuery())
    assert everything[-1].session_id == "s-old"

    by_chat = await store.list_sessions(SessionQuery(chat_id="chat-2"))
    assert [s.session_id for s in by_chat] == ["s-other"]

    aborted = await store.list_sessions(SessionQuery(status=SessionStatus.ABORTED))
    assert [s.session_id for s in aborted] == ["s-aborted"]

    recent = await store.list_sessions(SessionQuery(since="2026-02-01"))
    assert "s-old" not in {s.session_id for s in recent}


@pytest.mark.asyncio
async def test_list_sessions_counts_documents(db):
    """The summary counts distinct documents, not versions."""
    sessions = SessionStore(db)
    await sessions.save_session(_make_record("session-1"))
    await DocumentStore(db).save_versions([_make_document(), _make_document(content="v2")])

    [summary] = await sessions.list_sessions(SessionQuery())
    assert summary.document_count == 1
    assert summary.transcript_preview == "Hello"
