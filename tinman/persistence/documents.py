"""Document and suggestion store.

Documents are version-stacked: every save inserts a new (id, version)
row and reads return the latest version unless all versions are asked for.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

import aiosqlite

from tinman.schemas.documents import ArtifactKind, Document, Suggestion

logger = logging.getLogger(__name__)


class DocumentStore:
    """Persistent document store backed by SQLite.

    All methods are async and operate on an aiosqlite connection
    initialized by database.init_db().
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def next_version(self, document_id: str) -> int:
        """Version number the next save of this document will get."""
        async with self._db.execute(
            "SELECT MAX(version) FROM documents WHERE id = ?",
            (document_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return (row[0] or 0) + 1 if row else 1

    async def save_document(self, document: Document) -> None:
        """Insert one document version.

        Raises:
            aiosqlite.IntegrityError: If this (id, version) already exists.
        """
        await self._db.execute(
            """
            INSERT INTO documents
                (id, version, kind, title, content, chat_id, session_id,
                 user_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                document.id,
                document.version,
                document.kind.value,
                document.title,
                document.content,
                document.chat_id,
                document.session_id,
                document.user_id,
                document.created_at.isoformat(),
            ),
        )
        await self._db.commit()
        logger.info("Saved document %s v%d (%s)", document.id, document.version, document.kind)

    async def save_versions(
        self,
        documents: list[Document],
        suggestions: Sequence[Suggestion] = (),
    ) -> list[Document]:
        """Save documents as new versions, plus their suggestions, in one transaction.

        Each document gets the next free version number for its id, in
        list order, so two staged updates of one document stack instead
        of colliding. A suggestion made against a staged version is
        re-pointed at the version that document was actually saved as.
        Nothing is written if any insert fails.

        Returns:
            The documents as saved, with their final version numbers.
        """
        saved: list[Document] = []
        renumbered: dict[tuple[str, int], int] = {}
        try:
            for document in documents:
                version = await self.next_version(document.id)
                renumbered[(document.id, document.version)] = version
                document = document.model_copy(update={"version": version})
                await self._db.execute(
                    """
                    INSERT INTO documents
                        (id, version, kind, title, content, chat_id, session_id,
                         user_id, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        document.id,
                        document.version,
                        document.kind.value,
                        document.title,
                        document.content,
                        document.chat_id,
                        document.session_id,
                        document.user_id,
                        document.created_at.isoformat(),
                    ),
                )
                saved.append(document)
            await self._insert_suggestions([
                s.model_copy(update={
                    "document_version": renumbered.get(
                        (s.document_id, s.document_version), s.document_version,
                    ),
                })
                for s in suggestions
            ])
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        for document in saved:
            logger.info("Saved document %s v%d (%s)", document.id, document.version, document.kind)
        if suggestions:
            logger.info("Saved %d suggestions", len(suggestions))
        return saved

    async def get_document_by_id(self, document_id: str) -> Document | None:
        """Return the latest version of a document, or None."""
        self._db.row_factory = aiosqlite.Row
        async with self._db.execute(
            "SELECT * FROM documents WHERE id = ? ORDER BY version DESC LIMIT 1",
            (document_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def get_documents_by_id(self, document_id: str) -> list[Document]:
        """Return every version of a document, oldest first."""
        self._db.row_factory = aiosqlite.Row
        async with self._db.execute(
            "SELECT * FROM documents WHERE id = ? ORDER BY version",
            (document_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_document(row) for row in rows]

    async def get_documents_by_session(self, session_id: str) -> list[Document]:
        self._db.row_factory = aiosqlite.Row
        async with self._db.execute(
            "SELECT * FROM documents WHERE session_id = ? ORDER BY created_at, id, version",
            (session_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_document(row) for row in rows]

    async def save_suggestions(self, suggestions: list[Suggestion]) -> None:
        """Insert a batch of suggestions in one transaction."""
        if not suggestions:
            return
        try:
            await self._insert_suggestions(suggestions)
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise
        logger.info("Saved %d suggestions for document %s", len(suggestions), suggestions[0].document_id)

    async def _insert_suggestions(self, suggestions: Sequence[Suggestion]) -> None:
        if not suggestions:
            return
        await self._db.executemany(
            """
            INSERT INTO suggestions
                (id, document_id, document_version, original_sentence,
                 suggested_sentence, description, is_resolved, user_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    s.id,
                    s.document_id,
                    s.document_version,
                    s.original_sentence,
                    s.suggested_sentence,
                    s.description,
                    int(s.is_resolved),
                    s.user_id,
                    s.created_at.isoformat(),
                )
                for s in suggestions
            ],
        )

    async def get_suggestions_by_document_id(self, document_id: str) -> list[Suggestion]:
        self._db.row_factory = aiosqlite.Row
        async with self._db.execute(
            "SELECT * FROM suggestions WHERE document_id = ? ORDER BY created_at",
            (document_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            Suggestion(
                id=row["id"],
                document_id=row["document_id"],
                document_version=row["document_version"],
                original_sentence=row["original_sentence"],
                suggested_sentence=row["suggested_sentence"],
                description=row["description"],
                is_resolved=bool(row["is_resolved"]),
                user_id=row["user_id"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        return Document(
            id=row["id"],
            version=row["version"],
            kind=ArtifactKind(row["kind"]),
            title=row["title"],
            content=row["content"],
            chat_id=row["chat_id"],
            session_id=row["session_id"],
            user_id=row["user_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
