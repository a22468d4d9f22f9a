"""Listing store; the partial unique index on active fingerprints lives here."""

from __future__ import annotations

import json
import sqlite3
import uuid
from decimal import Decimal

from ..errors import ConflictError, NotFoundError
from ..records import Listing, ListingDraft, ListingStatus, from_iso, utcnow
from .storage import StoreBase


class ListingStore(StoreBase):
    """Persist listings; never deletes rows, removal is a status change."""

    def find_active_by_fingerprint(self, fingerprint: str) -> Listing | None:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT * FROM listings WHERE fingerprint = ? AND status = 'active'",
                (fingerprint,),
            ).fetchone()
        return _row_to_listing(row) if row is not None else None

    def insert(self, fingerprint: str, source_name: str, draft: ListingDraft) -> Listing:
        """Insert an active listing; a live listing with the same fingerprint raises ConflictError."""

        listing_id = uuid.uuid4().hex
        now = utcnow().isoformat()
        try:
            with self._writing() as conn:
                conn.execute(
                    """
                    INSERT INTO listings(
                        id, fingerprint, source_name, title, price, city, surface, description,
                        property_type, rooms, bedrooms, department, region, external_id, url,
                        images, renovation_score, renovation_keywords, status, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        listing_id,
                        fingerprint,
                        source_name,
                        draft.title,
                        str(draft.price),
                        draft.city,
                        draft.surface,
                        draft.description,
                        draft.property_type,
                        draft.rooms,
                        draft.bedrooms,
                        draft.department,
                        draft.region,
                        draft.external_id,
                        draft.url,
                        json.dumps(draft.images, ensure_ascii=False),
                        draft.renovation_score,
                        json.dumps(draft.renovation_keywords, ensure_ascii=False),
                        ListingStatus.ACTIVE.value,
                        now,
                        now,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"Active listing already exists for fingerprint {fingerprint}") from exc
        return self.get(listing_id)

    def get(self, listing_id: str) -> Listing:
        with self._reading() as conn:
            row = conn.execute("SELECT * FROM listings WHERE id = ?", (listing_id,)).fetchone()
        if row is None:
            raise NotFoundError("listing not found")
        return _row_to_listing(row)

    def get_active(self, listing_id: str) -> Listing:
        """Return the listing only while it is publicly visible."""

        listing = self.get(listing_id)
        if listing.status is not ListingStatus.ACTIVE:
            raise NotFoundError("listing not found")
        return listing

    def remove(self, listing_id: str, reason: str, conn: sqlite3.Connection | None = None) -> bool:
        with self._writing(conn) as writer:
            cur = writer.execute(
                """
                UPDATE listings SET status = ?, removed_reason = ?, updated_at = ?
                 WHERE id = ? AND status = 'active'
                """,
                (ListingStatus.REMOVED.value, reason, utcnow().isoformat(), listing_id),
            )
        return cur.rowcount > 0

    def remove_by_source(
        self, source_name: str, reason: str, conn: sqlite3.Connection | None = None
    ) -> int:
        with self._writing(conn) as writer:
            cur = writer.execute(
                """
                UPDATE listings SET status = ?, removed_reason = ?, updated_at = ?
                 WHERE source_name = ? AND status = 'active'
                """,
                (ListingStatus.REMOVED.value, reason, utcnow().isoformat(), source_name),
            )
        return cur.rowcount

    def count_active(self, source_name: str | None = None) -> int:
        with self._reading() as conn:
            if source_name:
                row = conn.execute(
                    "SELECT COUNT(*) FROM listings WHERE status = 'active' AND source_name = ?",
                    (source_name,),
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM listings WHERE status = 'active'"
                ).fetchone()
        return int(row[0])

    def list_active(self, limit: int = 50, source_name: str | None = None) -> list[Listing]:
        with self._reading() as conn:
            if source_name:
                rows = conn.execute(
                    """
                    SELECT * FROM listings WHERE status = 'active' AND source_name = ?
                     ORDER BY created_at DESC LIMIT ?
                    """,
                    (source_name, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM listings WHERE status = 'active' ORDER BY created_at DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [_row_to_listing(row) for row in rows]


def _row_to_listing(row: sqlite3.Row) -> Listing:
    draft = ListingDraft(
        title=row["title"],
        price=Decimal(row["price"]),
        city=row["city"],
        surface=row["surface"],
        description=row["description"] or "",
        property_type=row["property_type"],
        rooms=row["rooms"],
        bedrooms=row["bedrooms"],
        department=row["department"],
        region=row["region"],
        external_id=row["external_id"],
        url=row["url"],
        images=json.loads(row["images"] or "[]"),
        renovation_score=row["renovation_score"],
        renovation_keywords=json.loads(row["renovation_keywords"] or "[]"),
    )
    return Listing(
        id=row["id"],
        fingerprint=row["fingerprint"],
        source_name=row["source_name"],
        draft=draft,
        status=ListingStatus(row["status"]),
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
        removed_reason=row["removed_reason"],
    )


__all__ = ["ListingStore"]
