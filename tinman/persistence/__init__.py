"""Persistence layer for sessions, documents, and suggestions.

Provides SQLite-backed storage with async access via aiosqlite.
"""

from tinman.persistence.database import close_db, init_db
from tinman.persistence.documents import DocumentStore
from tinman.persistence.session import SessionStore

__all__ = ["DocumentStore", "SessionStore", "close_db", "init_db"]
