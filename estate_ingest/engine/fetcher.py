"""Fetch stage: adapter call wrapped in bounded exponential backoff."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

import structlog

from ..config import RetryPolicy, SourceConfig
from ..errors import TransientFetchError
from .feeds import FeedRegistry


@dataclass(slots=True)
class FetchResult:
    """Raw payload plus how many attempts it took."""

    payload: Any
    attempts: int


class Fetcher:
    """Coordinate adapter execution and the retry policy."""

    def __init__(
        self,
        feeds: FeedRegistry,
        retry: RetryPolicy | None = None,
        logger: structlog.BoundLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.feeds = feeds
        self.retry = retry or RetryPolicy()
        self.logger = logger or structlog.get_logger("estate_ingest.fetcher")
        self._sleep = sleep

    def fetch(self, source: SourceConfig) -> FetchResult:
        """Return the raw payload of ``source``.

        ``TransientFetchError`` is retried up to ``retry.max_attempts`` times;
        any other error propagates immediately. Exhaustion re-raises a
        ``TransientFetchError`` chained to the last failure.
        """

        adapter = self.feeds.get(source.source_type)
        attempt = 1
        last_error: TransientFetchError | None = None
        while True:
            try:
                payload = adapter.fetch_raw(source.fetch)
                return FetchResult(payload=payload, attempts=attempt)
            except TransientFetchError as exc:
                last_error = exc
                self.logger.warning(
                    "fetch_error",
                    source=source.name,
                    attempt=attempt,
                    max_attempts=self.retry.max_attempts,
                    error=str(exc),
                )

            if attempt >= self.retry.max_attempts:
                break
            delay = self.retry.delay_for(attempt)
            self.logger.info("fetch_retry", source=source.name, attempt=attempt, delay=delay)
            self._sleep(delay)
            attempt += 1

        raise TransientFetchError(
            f"Fetch failed after {attempt} attempts: {last_error}"
        ) from last_error


__all__ = ["FetchResult", "Fetcher"]
