"""Bounded worker pool shared by every ingestion job."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Any, Callable


class ThreadPoolManager:
    """Own the executor that runs admitted jobs.

    The pool bounds global concurrency only; per-source exclusivity is enforced
    by the job store at admission time.
    """

    def __init__(self, default_workers: int = 4) -> None:
        self.default_workers = default_workers
        self._executor: ThreadPoolExecutor | None = None
        self._lock = Lock()

    def get(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.default_workers, thread_name_prefix="ingest"
                )
            return self._executor

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        return self.get().submit(fn, *args)

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)


__all__ = ["ThreadPoolManager"]
