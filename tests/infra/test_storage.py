from __future__ import annotations

import sqlite3

import pytest

from estate_ingest.infra import SQLiteManager


def _index_names(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row["name"] for row in conn.execute(f"PRAGMA index_list({table})").fetchall()}


def test_sqlite_manager_initialises_schema(tmp_path) -> None:
    manager = SQLiteManager()
    conn = manager.connect(tmp_path / "nested" / "ingest.db")
    tables = {
        row["name"]
        for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    }
    assert {"sources", "ingestion_jobs", "source_locks", "listings", "optout_requests"} <= tables
    assert "ux_listings_active_fingerprint" in _index_names(conn, "listings")
    assert "ux_sources_name" in _index_names(conn, "sources")
    manager.close_all()


def test_connection_is_shared_per_path(tmp_path) -> None:
    manager = SQLiteManager()
    path = tmp_path / "ingest.db"
    assert manager.connect(path) is manager.connect(path)
    manager.close_all()


def test_active_fingerprint_index_is_partial(tmp_path) -> None:
    manager = SQLiteManager()
    path = tmp_path / "ingest.db"
    insert = (
        "INSERT INTO listings(id, fingerprint, source_name, title, price, city, status, created_at, updated_at)"
        " VALUES (?, 'fp', 'src', 't', '1', 'c', ?, 'now', 'now')"
    )
    with manager.transaction(path) as conn:
        conn.execute(insert, ("a", "removed"))
        conn.execute(insert, ("b", "removed"))
        conn.execute(insert, ("c", "active"))
    with pytest.raises(sqlite3.IntegrityError):
        with manager.transaction(path) as conn:
            conn.execute(insert, ("d", "active"))
    with manager.reading(path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM listings").fetchone()[0] == 3
    manager.close_all()


def test_transaction_rolls_back_on_error(tmp_path) -> None:
    manager = SQLiteManager()
    path = tmp_path / "ingest.db"
    with pytest.raises(RuntimeError):
        with manager.transaction(path) as conn:
            conn.execute(
                "INSERT INTO source_locks(source_name, job_id, acquired_at) VALUES ('s', 'j', 'now')"
            )
            raise RuntimeError("boom")
    with manager.reading(path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM source_locks").fetchone()[0] == 0
    manager.close_all()


def test_sqlite_manager_reset(tmp_path) -> None:
    manager = SQLiteManager()
    path = tmp_path / "ingest.db"
    with manager.transaction(path) as conn:
        conn.execute(
            "INSERT INTO source_locks(source_name, job_id, acquired_at) VALUES ('s', 'j', 'now')"
        )
    manager.reset(path)
    assert not path.exists()
    with manager.reading(path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM source_locks").fetchone()[0] == 0
    manager.close_all()
