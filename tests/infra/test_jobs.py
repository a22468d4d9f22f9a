from __future__ import annotations

import threading

import pytest

from estate_ingest.errors import InvalidStateError, NotFoundError
from estate_ingest.records import JobCounters, JobStage, JobStatus


def test_admit_creates_pending_job_and_token(registry, job_store, sample_source_config) -> None:
    registry.create(sample_source_config())
    job = job_store.admit("Example")

    assert job is not None
    assert job.status is JobStatus.PENDING
    assert job.stage is JobStage.PENDING
    assert job_store.held_tokens() == {"Example": job.id}
    assert job_store.in_flight("Example").id == job.id


def test_admit_refuses_busy_inactive_and_unknown_sources(registry, job_store, sample_source_config) -> None:
    registry.create(sample_source_config())
    registry.create(sample_source_config(name="Off", is_active=False))

    assert job_store.admit("Example") is not None
    assert job_store.admit("Example") is None
    assert job_store.admit("Off") is None
    assert job_store.admit("Ghost") is None
    assert len(job_store.list_recent()) == 1


def test_concurrent_admission_yields_one_job(registry, job_store, sample_source_config) -> None:
    registry.create(sample_source_config())
    barrier = threading.Barrier(8)
    results: list = []

    def contender() -> None:
        barrier.wait()
        results.append(job_store.admit("Example"))

    threads = [threading.Thread(target=contender) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    admitted = [job for job in results if job is not None]
    assert len(admitted) == 1
    assert len(job_store.list_recent(source_name="Example")) == 1


def test_lifecycle_and_terminal_immutability(registry, job_store, sample_source_config) -> None:
    registry.create(sample_source_config())
    job = job_store.admit("Example")
    job_store.mark_running(job.id)
    job_store.set_stage(job.id, JobStage.FETCHING)
    finished = job_store.complete(job.id, JobCounters(found=3, new=2, duplicate=1))

    assert finished.status is JobStatus.COMPLETED
    assert finished.counters.as_dict() == {"found": 3, "new": 2, "duplicate": 1, "errored": 0}
    assert job_store.held_tokens() == {}
    with pytest.raises(InvalidStateError):
        job_store.fail(job.id, "late")
    with pytest.raises(InvalidStateError):
        job_store.set_stage(job.id, JobStage.UPSERTING)
    with pytest.raises(InvalidStateError):
        job_store.mark_running(job.id)
    assert job_store.request_cancel(job.id) is False
    assert job_store.admit("Example") is not None


def test_terminal_stage_cannot_be_set_directly(registry, job_store, sample_source_config) -> None:
    registry.create(sample_source_config())
    job = job_store.admit("Example")
    with pytest.raises(InvalidStateError):
        job_store.set_stage(job.id, JobStage.COMPLETED)


def test_list_recent_is_newest_first_and_bounded(registry, job_store, sample_source_config) -> None:
    registry.create(sample_source_config())
    ids = []
    for _ in range(5):
        job = job_store.admit("Example")
        ids.append(job.id)
        job_store.fail(job.id, "x")

    recent = job_store.list_recent(limit=3)
    assert [job.id for job in recent] == list(reversed(ids))[:3]


def test_recover_stale_fails_orphans(registry, job_store, sample_source_config) -> None:
    registry.create(sample_source_config())
    registry.create(sample_source_config(name="Other"))
    stale = job_store.admit("Example")
    job_store.mark_running(stale.id)
    pending = job_store.admit("Other")

    recovered = job_store.recover_stale()
    assert set(recovered) == {stale.id, pending.id}
    assert job_store.get(stale.id).status is JobStatus.FAILED
    assert job_store.get(stale.id).error == "abandoned"
    assert job_store.held_tokens() == {}


def test_get_unknown_job(job_store) -> None:
    with pytest.raises(NotFoundError):
        job_store.get("missing")
