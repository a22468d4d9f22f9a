from __future__ import annotations

import threading
from typing import Any

import pytest

from estate_ingest.config import SourceType
from estate_ingest.engine.feeds import BaseFeedAdapter, FeedRegistry
from estate_ingest.engine.optout import SOURCE_DEACTIVATED
from estate_ingest.engine.pipeline import CANCELLED
from estate_ingest.errors import NotFoundError
from estate_ingest.records import JobStatus
from estate_ingest.runtime import build_runtime


class GatedAdapter(BaseFeedAdapter):
    """Manual-type adapter that blocks until the test opens the gate."""

    source_type = SourceType.MANUAL

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.gate = threading.Event()

    def fetch_raw(self, config: Any) -> Any:
        self.entered.set()
        assert self.gate.wait(timeout=10)
        return [dict(record) for record in config.records]


@pytest.fixture
def gated(temp_config_repository):
    adapter = GatedAdapter()
    rt = build_runtime(temp_config_repository, feeds=FeedRegistry(adapters=[adapter]), sleep=lambda _: None)
    yield rt, adapter
    adapter.gate.set()
    rt.close()


def test_run_eligible_sources_runs_each_active_source(runtime, sample_source_config, make_record) -> None:
    runtime.registry.create(sample_source_config(name="A"))
    runtime.registry.create(sample_source_config(name="B", records=[make_record(title="Autre")]))
    runtime.registry.create(sample_source_config(name="Off", is_active=False))

    admitted = runtime.orchestrator.run_eligible_sources(wait=True)

    assert sorted(job.source_name for job in admitted) == ["A", "B"]
    finished = [runtime.jobs.get(job.id) for job in admitted]
    assert all(job.status is JobStatus.COMPLETED for job in finished)
    assert runtime.listings.count_active() == 2


def test_second_call_while_in_flight_is_a_noop(gated, sample_source_config) -> None:
    runtime, adapter = gated
    runtime.registry.create(sample_source_config())

    first = runtime.orchestrator.run_eligible_sources()
    assert adapter.entered.wait(timeout=5)
    second = runtime.orchestrator.run_eligible_sources()
    assert len(first) == 1
    assert second == []
    assert runtime.orchestrator.run_source("Example") is None

    adapter.gate.set()
    runtime.orchestrator.thread_pool.shutdown(wait=True)
    assert runtime.jobs.get(first[0].id).status is JobStatus.COMPLETED
    assert len(runtime.jobs.list_recent(source_name="Example")) == 1


def test_concurrent_scheduling_calls_admit_one_job(gated, sample_source_config) -> None:
    runtime, adapter = gated
    runtime.registry.create(sample_source_config())
    barrier = threading.Barrier(6)
    admitted: list = []
    lock = threading.Lock()

    def trigger() -> None:
        barrier.wait()
        jobs = runtime.orchestrator.run_eligible_sources()
        with lock:
            admitted.extend(jobs)

    threads = [threading.Thread(target=trigger) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(admitted) == 1
    in_flight = [job for job in runtime.jobs.list_recent() if job.status.in_flight]
    assert len(in_flight) == 1
    adapter.gate.set()


def test_run_source_synchronously(runtime, sample_source_config) -> None:
    runtime.registry.create(sample_source_config())
    job = runtime.orchestrator.run_source("Example")
    assert job.status is JobStatus.COMPLETED
    assert job.counters.new == 1
    with pytest.raises(NotFoundError):
        runtime.orchestrator.run_source("Ghost")


def test_deactivate_cancels_in_flight_job_and_cascades(gated, sample_source_config) -> None:
    runtime, adapter = gated
    runtime.registry.create(sample_source_config())
    adapter.gate.set()
    runtime.orchestrator.run_source("Example")
    adapter.gate.clear()
    adapter.entered.clear()

    # Second run blocks in fetch; deactivation flags it and removes existing listings.
    runtime.registry.update(sample_source_config(records=[]))
    running = runtime.orchestrator.run_eligible_sources()
    assert adapter.entered.wait(timeout=5)
    outcome = runtime.orchestrator.deactivate_source("Example", cascade=True)
    adapter.gate.set()
    runtime.orchestrator.thread_pool.shutdown(wait=True)

    assert outcome == {"cancelled": True, "removed": 1}
    job = runtime.jobs.get(running[0].id)
    assert job.status is JobStatus.FAILED
    assert job.error == CANCELLED
    assert runtime.listings.count_active() == 0
    assert runtime.orchestrator.run_eligible_sources() == []


def test_deactivate_without_cascade_keeps_listings(runtime, sample_source_config) -> None:
    runtime.registry.create(sample_source_config())
    runtime.orchestrator.run_source("Example")
    outcome = runtime.orchestrator.deactivate_source("Example")
    assert outcome == {"cancelled": False, "removed": 0}
    assert runtime.listings.count_active() == 1
    runtime.orchestrator.activate_source("Example")
    assert runtime.registry.get("Example").is_active


def test_cascade_reason_is_recorded(runtime, sample_source_config) -> None:
    runtime.registry.create(sample_source_config())
    job = runtime.orchestrator.run_source("Example")
    runtime.orchestrator.deactivate_source("Example", cascade=True)
    listing = runtime.listings.list_active(source_name="Example")
    assert listing == []
    stored = runtime.storage.connect(runtime.repository.database_path()).execute(
        "SELECT removed_reason FROM listings WHERE source_name = 'Example'"
    ).fetchone()
    assert stored["removed_reason"] == SOURCE_DEACTIVATED
    assert job.counters.new == 1


def test_recover_stale_jobs(runtime, sample_source_config) -> None:
    runtime.registry.create(sample_source_config())
    orphan = runtime.jobs.admit("Example")
    assert runtime.orchestrator.recover_stale_jobs() == [orphan.id]
    assert runtime.jobs.get(orphan.id).error == "abandoned"
    assert runtime.orchestrator.run_source("Example").status is JobStatus.COMPLETED


def test_execute_failure_is_recorded_on_job(runtime, sample_source_config, monkeypatch) -> None:
    runtime.registry.create(sample_source_config())

    def explode(job, source):
        raise RuntimeError("worker crashed")

    monkeypatch.setattr(runtime.orchestrator.pipeline, "run", explode)
    job = runtime.orchestrator.run_source("Example")
    assert job.status is JobStatus.FAILED
    assert job.error == "unexpected error: worker crashed"
    assert runtime.jobs.held_tokens() == {}
