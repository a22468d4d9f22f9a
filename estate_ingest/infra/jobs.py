"""Job store: ingestion job records plus the per-source exclusivity token."""

from __future__ import annotations

import sqlite3
import uuid

from ..errors import InvalidStateError, NotFoundError
from ..records import (
    IngestionJob,
    JobCounters,
    JobStage,
    JobStatus,
    from_iso,
    utcnow,
)
from .storage import StoreBase

_IN_FLIGHT = (JobStatus.PENDING.value, JobStatus.RUNNING.value)


class JobStore(StoreBase):
    """Durable record of every ingestion job.

    A row in ``source_locks`` is the exclusivity token of a source: it is
    inserted in the same transaction as the job (admission) and deleted in the
    same transaction as the job's terminal write.
    """

    def admit(self, source_name: str) -> IngestionJob | None:
        """Atomically create a pending job unless the source is inactive or busy."""

        job_id = uuid.uuid4().hex
        now = utcnow().isoformat()
        with self._writing() as conn:
            row = conn.execute(
                "SELECT is_active FROM sources WHERE name = ?", (source_name,)
            ).fetchone()
            if row is None or not row["is_active"]:
                return None
            try:
                conn.execute(
                    "INSERT INTO source_locks(source_name, job_id, acquired_at) VALUES (?, ?, ?)",
                    (source_name, job_id, now),
                )
            except sqlite3.IntegrityError:
                return None
            conn.execute(
                """
                INSERT INTO ingestion_jobs(id, source_name, status, stage, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (job_id, source_name, JobStatus.PENDING.value, JobStage.PENDING.value, now),
            )
        return self.get(job_id)

    def mark_running(self, job_id: str) -> None:
        with self._writing() as conn:
            cur = conn.execute(
                "UPDATE ingestion_jobs SET status = ?, started_at = ? WHERE id = ? AND status = ?",
                (JobStatus.RUNNING.value, utcnow().isoformat(), job_id, JobStatus.PENDING.value),
            )
            if cur.rowcount == 0:
                raise InvalidStateError(f"Job {job_id} is not pending")

    def set_stage(self, job_id: str, stage: JobStage) -> None:
        if stage.terminal:
            raise InvalidStateError("Terminal stages are written by complete()/fail()")
        with self._writing() as conn:
            cur = conn.execute(
                f"UPDATE ingestion_jobs SET stage = ? WHERE id = ? AND status IN {_IN_FLIGHT}",
                (stage.value, job_id),
            )
            if cur.rowcount == 0:
                raise InvalidStateError(f"Job {job_id} is already terminal")

    def request_cancel(self, job_id: str) -> bool:
        with self._writing() as conn:
            cur = conn.execute(
                f"UPDATE ingestion_jobs SET cancel_requested = 1 WHERE id = ? AND status IN {_IN_FLIGHT}",
                (job_id,),
            )
        return cur.rowcount > 0

    def cancel_requested(self, job_id: str) -> bool:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT cancel_requested FROM ingestion_jobs WHERE id = ?", (job_id,)
            ).fetchone()
        return bool(row and row["cancel_requested"])

    def complete(self, job_id: str, counters: JobCounters) -> IngestionJob:
        return self._finish(job_id, JobStatus.COMPLETED, JobStage.COMPLETED, counters, None)

    def fail(self, job_id: str, error: str, counters: JobCounters | None = None) -> IngestionJob:
        return self._finish(
            job_id, JobStatus.FAILED, JobStage.FAILED, counters or JobCounters(), error
        )

    def _finish(
        self,
        job_id: str,
        status: JobStatus,
        stage: JobStage,
        counters: JobCounters,
        error: str | None,
    ) -> IngestionJob:
        with self._writing() as conn:
            cur = conn.execute(
                f"""
                UPDATE ingestion_jobs
                   SET status = ?, stage = ?, found = ?, new = ?, duplicate = ?, errored = ?,
                       error = ?, finished_at = ?
                 WHERE id = ? AND status IN {_IN_FLIGHT}
                """,
                (
                    status.value,
                    stage.value,
                    counters.found,
                    counters.new,
                    counters.duplicate,
                    counters.errored,
                    error,
                    utcnow().isoformat(),
                    job_id,
                ),
            )
            if cur.rowcount == 0:
                raise InvalidStateError(f"Job {job_id} is already terminal")
            conn.execute("DELETE FROM source_locks WHERE job_id = ?", (job_id,))
        return self.get(job_id)

    def get(self, job_id: str) -> IngestionJob:
        with self._reading() as conn:
            row = conn.execute("SELECT * FROM ingestion_jobs WHERE id = ?", (job_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Unknown job: {job_id}")
        return _row_to_job(row)

    def in_flight(self, source_name: str) -> IngestionJob | None:
        with self._reading() as conn:
            row = conn.execute(
                f"""
                SELECT * FROM ingestion_jobs
                 WHERE source_name = ? AND status IN {_IN_FLIGHT}
                 ORDER BY created_at DESC LIMIT 1
                """,
                (source_name,),
            ).fetchone()
        return _row_to_job(row) if row is not None else None

    def list_recent(self, limit: int = 50, source_name: str | None = None) -> list[IngestionJob]:
        with self._reading() as conn:
            if source_name:
                rows = conn.execute(
                    """
                    SELECT * FROM ingestion_jobs WHERE source_name = ?
                     ORDER BY created_at DESC, rowid DESC LIMIT ?
                    """,
                    (source_name, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM ingestion_jobs ORDER BY created_at DESC, rowid DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [_row_to_job(row) for row in rows]

    def recover_stale(self, reason: str = "abandoned") -> list[str]:
        """Fail jobs left in flight by a previous process and release their tokens."""

        with self._writing() as conn:
            rows = conn.execute(
                f"SELECT id FROM ingestion_jobs WHERE status IN {_IN_FLIGHT}"
            ).fetchall()
            job_ids = [row["id"] for row in rows]
            now = utcnow().isoformat()
            for job_id in job_ids:
                conn.execute(
                    "UPDATE ingestion_jobs SET status = ?, stage = ?, error = ?, finished_at = ? WHERE id = ?",
                    (JobStatus.FAILED.value, JobStage.FAILED.value, reason, now, job_id),
                )
            conn.execute("DELETE FROM source_locks")
        return job_ids

    def held_tokens(self) -> dict[str, str]:
        with self._reading() as conn:
            rows = conn.execute("SELECT source_name, job_id FROM source_locks").fetchall()
        return {row["source_name"]: row["job_id"] for row in rows}


def _row_to_job(row: sqlite3.Row) -> IngestionJob:
    return IngestionJob(
        id=row["id"],
        source_name=row["source_name"],
        status=JobStatus(row["status"]),
        stage=JobStage(row["stage"]),
        counters=JobCounters(
            found=row["found"],
            new=row["new"],
            duplicate=row["duplicate"],
            errored=row["errored"],
        ),
        created_at=from_iso(row["created_at"]),
        started_at=from_iso(row["started_at"]),
        finished_at=from_iso(row["finished_at"]),
        error=row["error"],
        cancel_requested=bool(row["cancel_requested"]),
    )


__all__ = ["JobStore"]
