from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from estate_ingest.config import (
    CsvFileFetchConfig,
    DEFAULT_FIELD_MAP,
    GlobalConfig,
    JsonApiFetchConfig,
    RetryPolicy,
    SourceConfig,
    SourceType,
)


def test_fetch_config_is_discriminated_by_source_type() -> None:
    json_source = SourceConfig.model_validate(
        {"name": "api", "fetch": {"source_type": "json_api", "url": "https://x.example/feed"}}
    )
    csv_source = SourceConfig.model_validate(
        {"name": "csv", "fetch": {"source_type": "csv_file", "path": "feeds/a.csv"}}
    )
    assert isinstance(json_source.fetch, JsonApiFetchConfig)
    assert json_source.source_type is SourceType.JSON_API
    assert isinstance(csv_source.fetch, CsvFileFetchConfig)
    assert csv_source.fetch.path == Path("feeds/a.csv")

    with pytest.raises(ValidationError):
        SourceConfig.model_validate({"name": "bad", "fetch": {"source_type": "ftp"}})


def test_source_validation_rules() -> None:
    with pytest.raises(ValidationError):
        SourceConfig.model_validate({"name": "   ", "fetch": {"source_type": "manual"}})
    with pytest.raises(ValidationError):
        JsonApiFetchConfig(url="ftp://example.com")
    with pytest.raises(ValidationError):
        CsvFileFetchConfig(path="a.csv", delimiter=";;")


def test_field_map_merges_defaults() -> None:
    source = SourceConfig.model_validate(
        {"name": " Trimmed ", "fetch": {"source_type": "manual"}, "field_map": {"title": "label"}}
    )
    assert source.name == "Trimmed"
    assert source.field_map["title"] == "label"
    assert source.field_map["external_id"] == DEFAULT_FIELD_MAP["external_id"]
    assert source.is_active is True


def test_retry_policy_bounds() -> None:
    with pytest.raises(ValidationError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValidationError):
        RetryPolicy(backoff_factor=0.5)
    assert RetryPolicy(backoff_base=2.0, max_backoff=3.0).delay_for(2) == 3.0


def test_global_config_defaults_and_paths(tmp_path) -> None:
    config = GlobalConfig()
    assert config.job_list_limit == 50
    assert config.run_cron is None
    assert config.resolved_database_path(tmp_path) == (tmp_path / "data" / "estate_ingest.db").resolve()
    absolute = GlobalConfig(database_path=tmp_path / "x.db")
    assert absolute.resolved_database_path(Path("/elsewhere")) == tmp_path / "x.db"
    with pytest.raises(ValidationError):
        GlobalConfig(worker_count=0)
