"""SQLite connection management and schema for every estate-ingest collection."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import Lock, RLock
from typing import Dict, Iterator

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS sources (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        source_type TEXT NOT NULL,
        fetch_config TEXT NOT NULL,
        field_map TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_sources_name ON sources(name)",
    "CREATE INDEX IF NOT EXISTS ix_sources_active ON sources(is_active)",
    """
    CREATE TABLE IF NOT EXISTS ingestion_jobs (
        id TEXT PRIMARY KEY,
        source_name TEXT NOT NULL,
        status TEXT NOT NULL,
        stage TEXT NOT NULL,
        found INTEGER NOT NULL DEFAULT 0,
        new INTEGER NOT NULL DEFAULT 0,
        duplicate INTEGER NOT NULL DEFAULT 0,
        errored INTEGER NOT NULL DEFAULT 0,
        error TEXT,
        cancel_requested INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        started_at TEXT,
        finished_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_jobs_source_status ON ingestion_jobs(source_name, status)",
    "CREATE INDEX IF NOT EXISTS ix_jobs_created ON ingestion_jobs(created_at DESC)",
    # One row per source with a job in flight; the primary key is the exclusivity token.
    """
    CREATE TABLE IF NOT EXISTS source_locks (
        source_name TEXT PRIMARY KEY,
        job_id TEXT NOT NULL,
        acquired_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS listings (
        id TEXT PRIMARY KEY,
        fingerprint TEXT NOT NULL,
        source_name TEXT NOT NULL,
        title TEXT NOT NULL,
        price TEXT NOT NULL,
        city TEXT NOT NULL,
        surface REAL,
        description TEXT,
        property_type TEXT,
        rooms INTEGER,
        bedrooms INTEGER,
        department TEXT,
        region TEXT,
        external_id TEXT,
        url TEXT,
        images TEXT NOT NULL DEFAULT '[]',
        renovation_score INTEGER NOT NULL DEFAULT 0,
        renovation_keywords TEXT NOT NULL DEFAULT '[]',
        status TEXT NOT NULL,
        removed_reason TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    # Fingerprint uniqueness only binds active listings; removed rows stay for audit.
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_listings_active_fingerprint
        ON listings(fingerprint) WHERE status = 'active'
    """,
    "CREATE INDEX IF NOT EXISTS ix_listings_source ON listings(source_name, external_id)",
    "CREATE INDEX IF NOT EXISTS ix_listings_status ON listings(status)",
    "CREATE INDEX IF NOT EXISTS ix_listings_created ON listings(created_at DESC)",
    """
    CREATE TABLE IF NOT EXISTS optout_requests (
        id TEXT PRIMARY KEY,
        listing_id TEXT NOT NULL,
        email TEXT,
        reason TEXT,
        status TEXT NOT NULL,
        decision_note TEXT,
        created_at TEXT NOT NULL,
        processed_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_optout_listing ON optout_requests(listing_id)",
    "CREATE INDEX IF NOT EXISTS ix_optout_status ON optout_requests(status)",
    "CREATE INDEX IF NOT EXISTS ix_optout_created ON optout_requests(created_at DESC)",
)


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees.

    One connection per database file is shared by every worker thread; a
    re-entrant lock per file serialises access so multi-statement writes can
    run inside a single ``BEGIN IMMEDIATE`` transaction.
    """

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._locks: Dict[Path, RLock] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA busy_timeout=5000")
                self._connections[path] = conn
                self._locks[path] = RLock()
                self._ensure_schema(conn)
            return self._connections[path]

    def lock(self, path: Path) -> RLock:
        self.connect(path)
        return self._locks[path]

    @contextmanager
    def reading(self, path: Path) -> Iterator[sqlite3.Connection]:
        conn = self.connect(path)
        with self.lock(path):
            yield conn

    @contextmanager
    def transaction(self, path: Path) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically, rolling back on any error."""

        conn = self.connect(path)
        with self.lock(path):
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        for statement in SCHEMA:
            conn.execute(statement)

    def reset(self, path: Path) -> None:
        with self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
                del self._locks[path]
        for candidate in (path, path.with_name(path.name + "-wal"), path.with_name(path.name + "-shm")):
            if candidate.exists():
                candidate.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()
            self._locks.clear()


class StoreBase:
    """Shared plumbing for the per-collection stores."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self.manager.connect(db_path)

    @contextmanager
    def _writing(self, conn: sqlite3.Connection | None = None) -> Iterator[sqlite3.Connection]:
        # Join the caller's transaction when one is passed in.
        if conn is not None:
            yield conn
            return
        with self.manager.transaction(self.db_path) as fresh:
            yield fresh

    def _reading(self):
        return self.manager.reading(self.db_path)


__all__ = ["SCHEMA", "SQLiteManager", "StoreBase"]
