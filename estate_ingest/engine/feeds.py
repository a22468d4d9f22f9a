"""Feed adapter Service Provider Interface and the built-in adapters."""

from __future__ import annotations

import csv
from abc import ABC, abstractmethod
from typing import Any, Mapping

import httpx

from ..config import (
    CsvFileFetchConfig,
    JsonApiFetchConfig,
    ManualFetchConfig,
    SourceType,
)
from ..errors import FetchError, MalformedPayloadError, TransientFetchError
from .normalizer import resolve_path

RETRYABLE_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})


class BaseFeedAdapter(ABC):
    """Uniform fetch contract: one call returns every raw record of a source."""

    source_type: SourceType

    @abstractmethod
    def fetch_raw(self, config: Any) -> Any:
        """Return the raw payload (expected to be a list of mappings)."""

    def close(self) -> None:
        return


class JsonApiFeedAdapter(BaseFeedAdapter):
    source_type = SourceType.JSON_API

    def __init__(self, client: httpx.Client | None = None) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=20)

    def fetch_raw(self, config: JsonApiFetchConfig) -> Any:
        request_kwargs: dict[str, Any] = {
            "method": config.method,
            "url": config.url,
            "headers": config.headers or None,
            "timeout": config.timeout,
        }
        if config.method == "GET":
            request_kwargs["params"] = config.params or None
        else:
            request_kwargs["json"] = config.params
        try:
            response = self._client.request(**request_kwargs)
        except httpx.TransportError as exc:
            raise TransientFetchError(f"{type(exc).__name__}: {exc}") from exc
        if response.status_code in RETRYABLE_STATUS or response.status_code >= 500:
            raise TransientFetchError(f"Unexpected status {response.status_code} from {config.url}")
        if response.status_code >= 400:
            raise FetchError(f"Unexpected status {response.status_code} from {config.url}")
        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedPayloadError(f"Response from {config.url} is not JSON") from exc
        if config.items_path:
            if not isinstance(body, Mapping):
                raise MalformedPayloadError(
                    f"items_path {config.items_path!r} needs a JSON object response"
                )
            items = resolve_path(body, config.items_path)
            if not isinstance(items, list):
                raise MalformedPayloadError(f"items_path {config.items_path!r} is not a list")
            return items
        return body

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class CsvFileFeedAdapter(BaseFeedAdapter):
    source_type = SourceType.CSV_FILE

    def fetch_raw(self, config: CsvFileFetchConfig) -> Any:
        try:
            with config.path.open("r", encoding=config.encoding, newline="") as stream:
                reader = csv.DictReader(stream, delimiter=config.delimiter)
                return [dict(row) for row in reader]
        except FileNotFoundError as exc:
            raise FetchError(f"CSV feed not found: {config.path}") from exc
        except UnicodeDecodeError as exc:
            raise MalformedPayloadError(f"CSV feed is not {config.encoding}: {config.path}") from exc


class ManualFeedAdapter(BaseFeedAdapter):
    source_type = SourceType.MANUAL

    def fetch_raw(self, config: ManualFetchConfig) -> Any:
        return [dict(record) for record in config.records]


class FeedRegistry:
    """Dispatch a source's tagged fetch config to the adapter for its type."""

    def __init__(self, adapters: list[BaseFeedAdapter] | None = None) -> None:
        self._adapters: dict[SourceType, BaseFeedAdapter] = {}
        for adapter in adapters or default_adapters():
            self.register(adapter)

    def register(self, adapter: BaseFeedAdapter) -> None:
        self._adapters[adapter.source_type] = adapter

    def get(self, source_type: SourceType) -> BaseFeedAdapter:
        try:
            return self._adapters[source_type]
        except KeyError as exc:
            raise FetchError(f"No feed adapter registered for {source_type.value}") from exc

    def close(self) -> None:
        for adapter in self._adapters.values():
            adapter.close()


def default_adapters() -> list[BaseFeedAdapter]:
    return [JsonApiFeedAdapter(), CsvFileFeedAdapter(), ManualFeedAdapter()]


__all__ = [
    "BaseFeedAdapter",
    "CsvFileFeedAdapter",
    "FeedRegistry",
    "JsonApiFeedAdapter",
    "ManualFeedAdapter",
    "RETRYABLE_STATUS",
    "default_adapters",
]
