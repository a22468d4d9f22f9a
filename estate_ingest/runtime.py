"""Wiring of stores, engine and orchestrator shared by the CLI and the HTTP app."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from .config import ConfigRepository, GlobalConfig
from .engine import (
    DeduplicationStore,
    FeedRegistry,
    Fetcher,
    IngestionPipeline,
    OptOutProcessor,
    ThreadPoolManager,
)
from .infra import JobStore, ListingStore, OptOutStore, SQLiteManager, SourceRegistry
from .orchestrator import Orchestrator


@dataclass
class Runtime:
    repository: ConfigRepository
    global_config: GlobalConfig
    storage: SQLiteManager
    registry: SourceRegistry
    jobs: JobStore
    listings: ListingStore
    optout_store: OptOutStore
    optouts: OptOutProcessor
    orchestrator: Orchestrator
    feeds: FeedRegistry

    def close(self) -> None:
        self.orchestrator.shutdown(wait=True)
        self.feeds.close()
        self.storage.close_all()


def build_runtime(
    repository: ConfigRepository | None = None,
    feeds: FeedRegistry | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Runtime:
    repository = repository or ConfigRepository()
    global_config = repository.load_global_config()
    db_path = repository.database_path()
    storage = SQLiteManager()

    registry = SourceRegistry(storage, db_path)
    jobs = JobStore(storage, db_path)
    listings = ListingStore(storage, db_path)
    optout_store = OptOutStore(storage, db_path)
    optouts = OptOutProcessor(listings, optout_store)

    feeds = feeds or FeedRegistry()
    fetcher = Fetcher(feeds, retry=global_config.retry, sleep=sleep)
    pipeline = IngestionPipeline(jobs, DeduplicationStore(listings), fetcher)
    orchestrator = Orchestrator(
        registry=registry,
        jobs=jobs,
        pipeline=pipeline,
        thread_pool=ThreadPoolManager(global_config.worker_count),
        optouts=optouts,
    )
    return Runtime(
        repository=repository,
        global_config=global_config,
        storage=storage,
        registry=registry,
        jobs=jobs,
        listings=listings,
        optout_store=optout_store,
        optouts=optouts,
        orchestrator=orchestrator,
        feeds=feeds,
    )


__all__ = ["Runtime", "build_runtime"]
