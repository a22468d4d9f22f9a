"""Scheduler/runner: admits ingestion jobs and runs them on the worker pool."""

from __future__ import annotations

from concurrent.futures import Future, wait as wait_futures

from .config import SourceConfig
from .engine import IngestionPipeline, OptOutProcessor, ThreadPoolManager
from .errors import InvalidStateError
from .infra import JobStore, SourceRegistry
from .logging_conf import configure_logging
from .records import IngestionJob


class Orchestrator:
    """Central coordinator managing the lifecycle of ingestion jobs.

    Admission goes through ``JobStore.admit``, which creates the job and takes
    the source's exclusivity token in one transaction, so concurrent calls
    from the timer and from an operator never start two jobs for one source.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        jobs: JobStore,
        pipeline: IngestionPipeline,
        thread_pool: ThreadPoolManager,
        optouts: OptOutProcessor,
    ) -> None:
        self.registry = registry
        self.jobs = jobs
        self.pipeline = pipeline
        self.thread_pool = thread_pool
        self.optouts = optouts
        self.logger = configure_logging().bind(component="orchestrator")

    # ------------------------------------------------------------------
    def run_eligible_sources(self, wait: bool = False) -> list[IngestionJob]:
        """Admit one job per active, idle source and hand them to the pool.

        Returns the admitted jobs (as admitted). Sources with a job already in
        flight are skipped, which makes repeated calls idempotent.
        """

        admitted: list[IngestionJob] = []
        futures: list[Future] = []
        for source in self.registry.list_active():
            job = self.jobs.admit(source.name)
            if job is None:
                self.logger.debug("source_busy", source=source.name)
                continue
            self.logger.info("job_admitted", source=source.name, job_id=job.id)
            admitted.append(job)
            futures.append(self.thread_pool.submit(self._execute, job.id, source.config))
        if wait and futures:
            wait_futures(futures)
        return admitted

    def run_source(self, source_name: str) -> IngestionJob | None:
        """Admit and run a single source synchronously; ``None`` if it is busy or inactive."""

        source = self.registry.get(source_name)
        job = self.jobs.admit(source.name)
        if job is None:
            self.logger.info("source_not_admitted", source=source.name)
            return None
        self.logger.info("job_admitted", source=source.name, job_id=job.id)
        return self._execute(job.id, source.config)

    def _execute(self, job_id: str, source: SourceConfig) -> IngestionJob:
        try:
            return self.pipeline.run(self.jobs.get(job_id), source)
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("job_execution_error", job_id=job_id, source=source.name)
            try:
                return self.jobs.fail(job_id, f"unexpected error: {exc}")
            except InvalidStateError:
                return self.jobs.get(job_id)

    # ------------------------------------------------------------------
    def cancel_source(self, source_name: str) -> bool:
        job = self.jobs.in_flight(source_name)
        if job is None:
            return False
        requested = self.jobs.request_cancel(job.id)
        if requested:
            self.logger.info("job_cancel_requested", source=source_name, job_id=job.id)
        return requested

    def activate_source(self, source_name: str) -> None:
        self.registry.set_active(source_name, True)
        self.logger.info("source_activated", source=source_name)

    def deactivate_source(self, source_name: str, cascade: bool = False) -> dict[str, object]:
        self.registry.set_active(source_name, False)
        cancelled = self.cancel_source(source_name)
        removed = self.optouts.suppress_source(source_name) if cascade else 0
        self.logger.info(
            "source_deactivated", source=source_name, cancelled=cancelled, removed=removed
        )
        return {"cancelled": cancelled, "removed": removed}

    def recover_stale_jobs(self) -> list[str]:
        job_ids = self.jobs.recover_stale()
        if job_ids:
            self.logger.warning("stale_jobs_recovered", job_ids=job_ids)
        return job_ids

    def recent_jobs(self, limit: int = 50, source_name: str | None = None) -> list[IngestionJob]:
        return self.jobs.list_recent(limit=limit, source_name=source_name)

    def shutdown(self, wait: bool = False) -> None:
        self.thread_pool.shutdown(wait=wait)


__all__ = ["Orchestrator"]
