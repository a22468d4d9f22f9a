"""Opt-out request store."""

from __future__ import annotations

import sqlite3
import uuid

from ..errors import NotFoundError
from ..records import OptOutRequest, OptOutStatus, from_iso, utcnow
from .storage import StoreBase


class OptOutStore(StoreBase):
    def create(
        self,
        listing_id: str,
        email: str | None,
        reason: str | None,
        conn: sqlite3.Connection | None = None,
    ) -> str:
        request_id = uuid.uuid4().hex
        with self._writing(conn) as writer:
            writer.execute(
                """
                INSERT INTO optout_requests(id, listing_id, email, reason, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (request_id, listing_id, email, reason, OptOutStatus.PENDING.value, utcnow().isoformat()),
            )
        return request_id

    def get(self, request_id: str, conn: sqlite3.Connection | None = None) -> OptOutRequest:
        query = "SELECT * FROM optout_requests WHERE id = ?"
        if conn is not None:
            row = conn.execute(query, (request_id,)).fetchone()
        else:
            with self._reading() as reader:
                row = reader.execute(query, (request_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Unknown opt-out request: {request_id}")
        return _row_to_request(row)

    def decide(
        self,
        request_id: str,
        status: OptOutStatus,
        note: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Move a pending request to a terminal status; False when it was not pending."""

        with self._writing(conn) as writer:
            cur = writer.execute(
                """
                UPDATE optout_requests SET status = ?, decision_note = ?, processed_at = ?
                 WHERE id = ? AND status = 'pending'
                """,
                (status.value, note, utcnow().isoformat(), request_id),
            )
        return cur.rowcount > 0

    def list_requests(self, status: OptOutStatus | None = None, limit: int = 100) -> list[OptOutRequest]:
        with self._reading() as conn:
            if status is not None:
                rows = conn.execute(
                    """
                    SELECT * FROM optout_requests WHERE status = ?
                     ORDER BY created_at DESC, rowid DESC LIMIT ?
                    """,
                    (status.value, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM optout_requests ORDER BY created_at DESC, rowid DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [_row_to_request(row) for row in rows]


def _row_to_request(row: sqlite3.Row) -> OptOutRequest:
    return OptOutRequest(
        id=row["id"],
        listing_id=row["listing_id"],
        status=OptOutStatus(row["status"]),
        created_at=from_iso(row["created_at"]),
        email=row["email"],
        reason=row["reason"],
        decision_note=row["decision_note"],
        processed_at=from_iso(row["processed_at"]),
    )


__all__ = ["OptOutStore"]
