"""Shared fixtures: isolated project home, stores and source builders."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from estate_ingest.config import (
    ConfigLocator,
    ConfigRepository,
    GlobalConfig,
    ManualFetchConfig,
    RetryPolicy,
    SourceConfig,
)
from estate_ingest.engine import DeduplicationStore, FeedRegistry, Fetcher, IngestionPipeline
from estate_ingest.infra import JobStore, ListingStore, OptOutStore, SQLiteManager, SourceRegistry
from estate_ingest.runtime import Runtime, build_runtime


@pytest.fixture
def project_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("ESTATE_INGEST_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def temp_config_repository(project_home: Path) -> ConfigRepository:
    repository = ConfigRepository(ConfigLocator(project_root=project_home))
    repository.save_global_config(
        GlobalConfig(retry=RetryPolicy(max_attempts=3, backoff_base=0.0), admin_tokens=["admin-token"])
    )
    return repository


@pytest.fixture
def storage() -> Iterable[SQLiteManager]:
    manager = SQLiteManager()
    yield manager
    manager.close_all()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "test.db"


@pytest.fixture
def registry(storage: SQLiteManager, db_path: Path) -> SourceRegistry:
    return SourceRegistry(storage, db_path)


@pytest.fixture
def job_store(storage: SQLiteManager, db_path: Path) -> JobStore:
    return JobStore(storage, db_path)


@pytest.fixture
def listing_store(storage: SQLiteManager, db_path: Path) -> ListingStore:
    return ListingStore(storage, db_path)


@pytest.fixture
def optout_store(storage: SQLiteManager, db_path: Path) -> OptOutStore:
    return OptOutStore(storage, db_path)


@pytest.fixture
def make_record() -> Callable[..., dict[str, Any]]:
    def _builder(**overrides: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": "ext-1",
            "title": "Maison à rénover",
            "price": 150000,
            "city": "Lyon",
            "surface": 85,
            "description": "Gros travaux, beaucoup de charme",
            "rooms": 4,
        }
        record.update(overrides)
        return record

    return _builder


@pytest.fixture
def sample_source_config(make_record) -> Callable[..., SourceConfig]:
    def _builder(name: str = "Example", records: list[dict[str, Any]] | None = None, **overrides: Any) -> SourceConfig:
        base: dict[str, Any] = {
            "name": name,
            "fetch": ManualFetchConfig(records=records if records is not None else [make_record()]),
        }
        base.update(overrides)
        return SourceConfig(**base)

    return _builder


@pytest.fixture
def pipeline(
    project_home: Path, job_store: JobStore, listing_store: ListingStore
) -> IngestionPipeline:
    fetcher = Fetcher(FeedRegistry(), retry=RetryPolicy(backoff_base=0.0), sleep=lambda _: None)
    return IngestionPipeline(job_store, DeduplicationStore(listing_store), fetcher)


@pytest.fixture
def runtime(temp_config_repository: ConfigRepository) -> Iterable[Runtime]:
    rt = build_runtime(temp_config_repository, sleep=lambda _: None)
    yield rt
    rt.close()
