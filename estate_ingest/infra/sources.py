"""Source registry backed by the ``sources`` table."""

from __future__ import annotations

import json
import sqlite3
from typing import Iterable

from ..config import SourceConfig
from ..errors import ConflictError, NotFoundError
from ..records import SourceRecord, from_iso, utcnow
from .storage import StoreBase


class SourceRegistry(StoreBase):
    """CRUD over configured sources.

    Reads always hit storage so the scheduler sees the activation state as of
    the admission cycle that asks for it.
    """

    def create(self, config: SourceConfig) -> SourceRecord:
        now = utcnow().isoformat()
        try:
            with self._writing() as conn:
                conn.execute(
                    """
                    INSERT INTO sources(name, source_type, fetch_config, field_map, is_active, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        config.name,
                        config.source_type.value,
                        config.fetch.model_dump_json(),
                        json.dumps(config.field_map, ensure_ascii=False),
                        int(config.is_active),
                        now,
                        now,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"Source name already registered: {config.name}") from exc
        return self.get(config.name)

    def update(self, config: SourceConfig) -> SourceRecord:
        with self._writing() as conn:
            cur = conn.execute(
                """
                UPDATE sources
                   SET source_type = ?, fetch_config = ?, field_map = ?, is_active = ?, updated_at = ?
                 WHERE name = ?
                """,
                (
                    config.source_type.value,
                    config.fetch.model_dump_json(),
                    json.dumps(config.field_map, ensure_ascii=False),
                    int(config.is_active),
                    utcnow().isoformat(),
                    config.name,
                ),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"Unknown source: {config.name}")
        return self.get(config.name)

    def set_active(self, name: str, active: bool) -> SourceRecord:
        with self._writing() as conn:
            cur = conn.execute(
                "UPDATE sources SET is_active = ?, updated_at = ? WHERE name = ?",
                (int(active), utcnow().isoformat(), name),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"Unknown source: {name}")
        return self.get(name)

    def get(self, name: str) -> SourceRecord:
        with self._reading() as conn:
            row = conn.execute("SELECT * FROM sources WHERE name = ?", (name,)).fetchone()
        if row is None:
            raise NotFoundError(f"Unknown source: {name}")
        return _row_to_source(row)

    def list_sources(self) -> list[SourceRecord]:
        with self._reading() as conn:
            rows = conn.execute("SELECT * FROM sources ORDER BY name").fetchall()
        return [_row_to_source(row) for row in rows]

    def list_active(self) -> list[SourceRecord]:
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT * FROM sources WHERE is_active = 1 ORDER BY name"
            ).fetchall()
        return [_row_to_source(row) for row in rows]

    def import_configs(self, configs: Iterable[SourceConfig]) -> tuple[list[str], list[str]]:
        """Register every config not yet known; return (created, skipped) names."""

        created: list[str] = []
        skipped: list[str] = []
        for config in configs:
            try:
                self.create(config)
            except ConflictError:
                skipped.append(config.name)
            else:
                created.append(config.name)
        return created, skipped

    def source_stats(self) -> list[dict[str, object]]:
        """Per-source listing totals and the finish time of the last completed job."""

        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT s.name, s.source_type, s.is_active,
                       (SELECT COUNT(*) FROM listings l WHERE l.source_name = s.name) AS total_listings,
                       (SELECT MAX(j.finished_at) FROM ingestion_jobs j
                         WHERE j.source_name = s.name AND j.status = 'completed') AS last_fetch
                  FROM sources s
                 ORDER BY s.name
                """
            ).fetchall()
        return [
            {
                "name": row["name"],
                "source_type": row["source_type"],
                "is_active": bool(row["is_active"]),
                "total_listings": row["total_listings"],
                "last_fetch": row["last_fetch"],
            }
            for row in rows
        ]


def _row_to_source(row: sqlite3.Row) -> SourceRecord:
    config = SourceConfig.model_validate(
        {
            "name": row["name"],
            "fetch": json.loads(row["fetch_config"]),
            "field_map": json.loads(row["field_map"]),
            "is_active": bool(row["is_active"]),
        }
    )
    return SourceRecord(
        id=row["id"],
        config=config,
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )


__all__ = ["SourceRegistry"]
