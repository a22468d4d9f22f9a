from __future__ import annotations

import json

import yaml

from estate_ingest.config import ConfigLocator, ConfigRepository, CsvFileFetchConfig, GlobalConfig


def test_locator_honours_env_home(project_home) -> None:
    locator = ConfigLocator()
    assert locator.project_root == project_home.resolve()
    assert locator.sources_dir.is_dir()
    assert locator.logs_dir.is_dir()


def test_global_config_created_on_first_load(project_home) -> None:
    repository = ConfigRepository()
    config = repository.load_global_config()
    assert isinstance(config, GlobalConfig)
    assert repository.locator.global_config_path().exists()
    assert repository.database_path() == (project_home / "data" / "estate_ingest.db").resolve()


def test_global_config_read_from_yaml(project_home) -> None:
    path = project_home / "data" / "global_config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        yaml.safe_dump({"worker_count": 2, "admin_tokens": ["t"], "retry": {"max_attempts": 5}}),
        encoding="utf-8",
    )
    config = ConfigRepository().load_global_config()
    assert config.worker_count == 2
    assert config.admin_tokens == ["t"]
    assert config.retry.max_attempts == 5


def test_source_files_round_trip(temp_config_repository, sample_source_config) -> None:
    path = temp_config_repository.save_source_file(sample_source_config(name="Agence Sud"))
    assert path.name == "agence-sud.yaml"
    definitions = temp_config_repository.list_source_definitions()
    assert [d.name for d in definitions] == ["Agence Sud"]
    assert definitions[0].fetch.records[0]["city"] == "Lyon"


def test_csv_paths_resolved_relative_to_definition(temp_config_repository) -> None:
    sources_dir = temp_config_repository.locator.sources_dir
    (sources_dir / "partner.json").write_text(
        json.dumps({"name": "Partner", "fetch": {"source_type": "csv_file", "path": "feeds/partner.csv"}}),
        encoding="utf-8",
    )
    config = temp_config_repository.load_source_file(sources_dir / "partner.json")
    assert isinstance(config.fetch, CsvFileFetchConfig)
    assert config.fetch.path == (sources_dir / "feeds" / "partner.csv").resolve()
