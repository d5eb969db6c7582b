"""SQLite database layer for sessions, documents, and suggestions.

Manages the SQLite connection and schema creation. Uses aiosqlite for
async access with WAL mode for concurrent read performance.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

# Documents are version-stacked: (id, version) is the key and an update
# inserts the next version instead of rewriting the row.
_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id       TEXT PRIMARY KEY,
    chat_id          TEXT NOT NULL,
    user_id          TEXT,
    model            TEXT NOT NULL DEFAULT '',
    status           TEXT NOT NULL DEFAULT 'active',
    created_at       TEXT NOT NULL,
    completed_at     TEXT,
    transcript       TEXT NOT NULL DEFAULT '',
    event_count      INTEGER NOT NULL DEFAULT 0,
    abort_reason     TEXT NOT NULL DEFAULT '',
    duration_seconds REAL NOT NULL DEFAULT 0.0
);

CREATE TABLE IF NOT EXISTS documents (
    id          TEXT NOT NULL,
    version     INTEGER NOT NULL,
    kind        TEXT NOT NULL,
    title       TEXT NOT NULL,
    content     TEXT NOT NULL DEFAULT '',
    chat_id     TEXT NOT NULL DEFAULT '',
    session_id  TEXT NOT NULL DEFAULT '',
    user_id     TEXT,
    created_at  TEXT NOT NULL,
    PRIMARY KEY (id, version)
);

CREATE TABLE IF NOT EXISTS suggestions (
    id                 TEXT PRIMARY KEY,
    document_id        TEXT NOT NULL,
    document_version   INTEGER NOT NULL,
    original_sentence  TEXT NOT NULL,
    suggested_sentence TEXT NOT NULL,
    description        TEXT NOT NULL DEFAULT '',
    is_resolved        INTEGER NOT NULL DEFAULT 0,
    user_id            TEXT,
    created_at         TEXT NOT NULL,
    FOREIGN KEY (document_id, document_version)
        REFERENCES documents(id, version) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_documents_session ON documents(session_id);
CREATE INDEX IF NOT EXISTS idx_suggestions_document ON suggestions(document_id);
CREATE INDEX IF NOT EXISTS idx_sessions_created ON sessions(created_at);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Initialize the database connection and create tables if needed.

    Creates parent directories if they don't exist, enables WAL mode
    and foreign keys, then runs the schema DDL.

    Args:
        db_path: Path to the SQLite database file. Supports ~ expansion.

    Returns:
        An open aiosqlite connection ready for use.
    """
    resolved = Path(db_path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(str(resolved))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    await db.executescript(_SCHEMA)
    await db.commit()

    logger.info("Database initialized at %s", resolved)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Close the database connection."""
    await db.close()
