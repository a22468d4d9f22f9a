"""Per-job ingestion state machine: fetch → normalize → dedupe → upsert → finalize."""

from __future__ import annotations

from typing import Any, Callable, Mapping, TypeVar

import structlog

from ..config import SourceConfig
from ..errors import FetchError, MalformedPayloadError, RecordNormalizationError
from ..infra.jobs import JobStore
from ..logging_conf import source_logger
from ..records import IngestionJob, JobCounters, JobStage, ListingDraft
from .dedup import DeduplicationStore, fingerprint_draft
from .fetcher import Fetcher
from .normalizer import Normalizer, ensure_records

T = TypeVar("T")

CANCELLED = "cancelled"


class JobCancelled(Exception):
    """Raised between stages once the scheduler asked the job to stop."""


class IngestionPipeline:
    """Drive one admitted job through every stage and persist its outcome.

    Record-level problems are counted on the job; only fetch failures,
    malformed payloads, cancellation and unexpected faults end in ``failed``.
    """

    def __init__(
        self,
        jobs: JobStore,
        dedup: DeduplicationStore,
        fetcher: Fetcher,
        logger_factory: Callable[[str], structlog.BoundLogger] = source_logger,
    ) -> None:
        self.jobs = jobs
        self.dedup = dedup
        self.fetcher = fetcher
        self._logger_factory = logger_factory

    def run(self, job: IngestionJob, source: SourceConfig) -> IngestionJob:
        log = self._logger_factory(source.name).bind(job_id=job.id)
        counters = JobCounters()
        self.jobs.mark_running(job.id)
        log.info("job_started")
        try:
            raw = self._stage(job, JobStage.FETCHING, log, lambda: self._fetch(source, log))
            drafts = self._stage(
                job,
                JobStage.NORMALIZING,
                log,
                lambda: self._normalize(source, raw, counters, log),
            )
            candidates = self._stage(
                job, JobStage.DEDUPING, log, lambda: self._dedupe(drafts, counters)
            )
            self._stage(
                job,
                JobStage.UPSERTING,
                log,
                lambda: self._upsert(source, candidates, counters),
            )
        except JobCancelled:
            log.warning("job_cancelled", **counters.as_dict())
            return self.jobs.fail(job.id, CANCELLED, counters)
        except (FetchError, MalformedPayloadError) as exc:
            log.error("job_failed", error=str(exc), error_type=type(exc).__name__)
            return self.jobs.fail(job.id, str(exc), counters)
        except Exception as exc:  # noqa: BLE001
            log.exception("job_crashed", error=str(exc))
            return self.jobs.fail(job.id, f"unexpected error: {exc}", counters)

        finished = self.jobs.complete(job.id, counters)
        log.info("job_completed", **counters.as_dict())
        return finished

    # ------------------------------------------------------------------
    def _stage(
        self,
        job: IngestionJob,
        stage: JobStage,
        log: structlog.BoundLogger,
        action: Callable[[], T],
    ) -> T:
        if self.jobs.cancel_requested(job.id):
            raise JobCancelled(stage.value)
        self.jobs.set_stage(job.id, stage)
        log.debug("stage_entered", stage=stage.value)
        return action()

    def _fetch(self, source: SourceConfig, log: structlog.BoundLogger) -> list[Mapping[str, Any]]:
        result = self.fetcher.fetch(source)
        records = ensure_records(result.payload)
        log.info("feed_fetched", records=len(records), attempts=result.attempts)
        return records

    def _normalize(
        self,
        source: SourceConfig,
        raw: list[Mapping[str, Any]],
        counters: JobCounters,
        log: structlog.BoundLogger,
    ) -> list[ListingDraft]:
        normalizer = Normalizer(source.field_map)
        counters.found = len(raw)
        drafts: list[ListingDraft] = []
        for index, record in enumerate(raw):
            try:
                drafts.append(normalizer.normalize(record))
            except RecordNormalizationError as exc:
                counters.errored += 1
                log.info("record_skipped", index=index, field=exc.field, reason=str(exc))
        return drafts

    def _dedupe(
        self, drafts: list[ListingDraft], counters: JobCounters
    ) -> list[tuple[str, ListingDraft]]:
        seen: set[str] = set()
        candidates: list[tuple[str, ListingDraft]] = []
        for draft in drafts:
            fingerprint_value = fingerprint_draft(draft)
            if fingerprint_value in seen or self.dedup.is_known(fingerprint_value):
                counters.duplicate += 1
                continue
            seen.add(fingerprint_value)
            candidates.append((fingerprint_value, draft))
        return candidates

    def _upsert(
        self,
        source: SourceConfig,
        candidates: list[tuple[str, ListingDraft]],
        counters: JobCounters,
    ) -> None:
        for fingerprint_value, draft in candidates:
            result = self.dedup.store(fingerprint_value, draft, source.name)
            if result.is_duplicate:
                counters.duplicate += 1
            else:
                counters.new += 1


__all__ = ["CANCELLED", "IngestionPipeline", "JobCancelled"]
