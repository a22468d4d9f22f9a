"""Pydantic models used across estate-ingest configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class SourceType(str, Enum):
    """Supported feed kinds; each maps to one feed adapter."""

    JSON_API = "json_api"
    CSV_FILE = "csv_file"
    MANUAL = "manual"


class RetryPolicy(BaseModel):
    """Bounded exponential backoff applied to the fetch stage."""

    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_factor: float = 2.0
    max_backoff: float = 30.0

    @model_validator(mode="after")
    def _validate_bounds(self) -> "RetryPolicy":
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_base < 0 or self.max_backoff < 0:
            raise ValueError("Backoff durations must be non-negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        return self

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before retrying after the given failed attempt (1-based)."""

        delay = self.backoff_base * (self.backoff_factor ** (attempt - 1))
        return min(delay, self.max_backoff)


class JsonApiFetchConfig(BaseModel):
    """HTTP endpoint returning a JSON array of listings (or an object wrapping one)."""

    source_type: Literal["json_api"] = "json_api"
    url: str
    method: Literal["GET", "POST"] = "GET"
    params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    # Dotted path to the list inside the response body, e.g. "data.items".
    items_path: str | None = None
    timeout: float = 20.0

    @field_validator("url")
    @classmethod
    def _require_http(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("json_api url must start with http:// or https://")
        return value


class CsvFileFetchConfig(BaseModel):
    """Local CSV export dropped by a partner."""

    source_type: Literal["csv_file"] = "csv_file"
    path: Path
    delimiter: str = ","
    encoding: str = "utf-8"

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("delimiter")
    @classmethod
    def _single_char(cls, value: str) -> str:
        if len(value) != 1:
            raise ValueError("delimiter must be a single character")
        return value


class ManualFetchConfig(BaseModel):
    """Records typed in by an operator and stored inline in the source config."""

    source_type: Literal["manual"] = "manual"
    records: list[dict[str, Any]] = Field(default_factory=list)


FetchConfig = Annotated[
    Union[JsonApiFetchConfig, CsvFileFetchConfig, ManualFetchConfig],
    Field(discriminator="source_type"),
]


DEFAULT_FIELD_MAP: dict[str, str] = {
    "title": "title",
    "price": "price",
    "city": "city",
    "surface": "surface",
    "description": "description",
    "property_type": "property_type",
    "rooms": "rooms",
    "bedrooms": "bedrooms",
    "department": "department",
    "region": "region",
    "external_id": "id",
    "url": "url",
    "images": "images",
}


class SourceConfig(BaseModel):
    """Full definition of a listing source."""

    name: str
    fetch: FetchConfig
    # Canonical attribute -> dotted path in the raw record.
    field_map: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_FIELD_MAP))
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Source name cannot be empty")
        return value

    @field_validator("field_map", mode="before")
    @classmethod
    def _merge_defaults(cls, value: Any) -> dict[str, str]:
        if value in (None, ""):
            return dict(DEFAULT_FIELD_MAP)
        if not isinstance(value, dict):
            raise ValueError("field_map expects a mapping")
        merged = dict(DEFAULT_FIELD_MAP)
        merged.update({str(k): str(v) for k, v in value.items()})
        return merged

    @property
    def source_type(self) -> SourceType:
        return SourceType(self.fetch.source_type)


class GlobalConfig(BaseModel):
    """Global controls shared across sources."""

    database_path: Path = Field(default=Path("data/estate_ingest.db"))
    worker_count: int = 4
    run_interval_seconds: int = 900
    # Crontab expression; takes precedence over run_interval_seconds when set.
    run_cron: str | None = None
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    job_list_limit: int = 50
    admin_tokens: list[str] = Field(default_factory=list)

    @field_validator("database_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _validate_limits(self) -> "GlobalConfig":
        if self.worker_count < 1:
            raise ValueError("worker_count must be >= 1")
        if self.run_interval_seconds < 1:
            raise ValueError("run_interval_seconds must be >= 1")
        if self.job_list_limit < 1:
            raise ValueError("job_list_limit must be >= 1")
        return self

    def resolved_database_path(self, base_dir: Path) -> Path:
        """Return the database path relative to the project root."""

        if not self.database_path.is_absolute():
            return (base_dir / self.database_path).resolve()
        return self.database_path


__all__ = [
    "CsvFileFetchConfig",
    "DEFAULT_FIELD_MAP",
    "FetchConfig",
    "GlobalConfig",
    "JsonApiFetchConfig",
    "ManualFetchConfig",
    "RetryPolicy",
    "SourceConfig",
    "SourceType",
]
