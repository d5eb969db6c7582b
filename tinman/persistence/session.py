"""Session store for saving, retrieving, and listing generation sessions.

Provides the SessionStore class that maps SessionRecord models to rows
of the sessions table.
"""

from __future__ import annotations

import logging
from datetime import datetime

import aiosqlite

from tinman.schemas.session import (
    SessionQuery,
    SessionRecord,
    SessionStatus,
    SessionSummary,
)

logger = logging.getLogger(__name__)


class SessionStore:
    """Persistent session store backed by SQLite.

    All methods are async and operate on an aiosqlite connection
    initialized by database.init_db().
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def save_session(self, record: SessionRecord) -> None:
        """Insert or replace a session row."""
        await self._db.execute(
            """
            INSERT OR REPLACE INTO sessions
                (session_id, chat_id, user_id, model, status, created_at,
                 completed_at, transcript, event_count, abort_reason,
                 duration_seconds)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.session_id,
                record.chat_id,
                record.user_id,
                record.model,
                record.status.value,
                record.created_at.isoformat(),
                record.completed_at.isoformat() if record.completed_at else None,
                record.transcript,
                record.event_count,
                record.abort_reason,
                record.duration_seconds,
            ),
        )
        await self._db.commit()
        logger.info("Saved session %s (%s)", record.session_id, record.status)

    async def get_session(self, session_id: str) -> SessionRecord | None:
        """Retrieve a session by ID or unique ID prefix.

        Tries an exact match first. If that fails and the input is at
        least 4 characters, falls back to a prefix match. Returns None
        when nothing matches or the prefix is ambiguous.
        """
        self._db.row_factory = aiosqlite.Row
        async with self._db.execute(
            "SELECT * FROM sessions WHERE session_id = ?",
            (session_id,),
        ) as cursor:
            row = await cursor.fetchone()

        if not row and len(session_id) >= 4:
            async with self._db.execute(
                "SELECT * FROM sessions WHERE session_id LIKE ?"
                " ORDER BY created_at DESC LIMIT 2",
                (session_id + "%",),
            ) as cursor:
                rows = await cursor.fetchall()
            if len(rows) == 1:
                row = rows[0]

        if not row:
            return None
        return self._row_to_record(row)

    async def list_sessions(self, query: SessionQuery) -> list[SessionSummary]:
        """List sessions matching the query, most recent first."""
        conditions: list[str] = []
        params: list[object] = []

        if query.chat_id:
            conditions.append("s.chat_id = ?")
            params.append(query.chat_id)
        if query.status:
            conditions.append("s.status = ?")
            params.append(query.status.value)
        if query.since:
            conditions.append("s.created_at >= ?")
            params.append(query.since)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        sql = f"""
            SELECT s.*,
                   (SELECT COUNT(DISTINCT d.id) FROM documents d
                     WHERE d.session_id = s.session_id) AS document_count
            FROM sessions s
            {where}
            ORDER BY s.created_at DESC
            LIMIT ? OFFSET ?
        """
        params.extend([query.limit, query.offset])

        self._db.row_factory = aiosqlite.Row
        summaries: list[SessionSummary] = []
        async with self._db.execute(sql, params) as cursor:
            async for row in cursor:
                summaries.append(SessionSummary(
                    session_id=row["session_id"],
                    chat_id=row["chat_id"],
                    status=SessionStatus(row["status"]),
                    created_at=datetime.fromisoformat(row["created_at"]),
                    transcript_preview=row["transcript"][:100],
                    event_count=row["event_count"],
                    document_count=row["document_count"],
                    duration_seconds=row["duration_seconds"],
                ))
        return summaries

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> SessionRecord:
        completed_at = (
            datetime.fromisoformat(row["completed_at"])
            if row["completed_at"]
            else None
        )
        return SessionRecord(
            session_id=row["session_id"],
            chat_id=row["chat_id"],
            user_id=row["user_id"],
            model=row["model"],
            status=SessionStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            completed_at=completed_at,
            transcript=row["transcript"],
            event_count=row["event_count"],
            abort_reason=row["abort_reason"],
            duration_seconds=row["duration_seconds"],
        )
