from __future__ import annotations

from pathlib import Path

import pytest

from estate_ingest.logging_conf import (
    available_source_logs,
    configure_logging,
    main_log_file,
    source_log_file,
    source_logger,
    tail_log,
)


def _switch_home(monkeypatch: pytest.MonkeyPatch, root: Path) -> Path:
    monkeypatch.setenv("ESTATE_INGEST_HOME", str(root))
    return root / "logs"


def test_global_log_follows_project_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    first = _switch_home(monkeypatch, tmp_path / "first")
    configure_logging().info("first_home_event")

    second = _switch_home(monkeypatch, tmp_path / "second")
    configure_logging().info("second_home_event")

    assert main_log_file() == second / "ingest.log"
    assert "second_home_event" in (second / "ingest.log").read_text(encoding="utf-8")
    assert "second_home_event" not in (first / "ingest.log").read_text(encoding="utf-8")


def test_errors_also_land_in_error_log(project_home: Path) -> None:
    configure_logging().error("feed_exploded", source="Example")
    configure_logging().info("routine_event")
    error_log = (project_home / "logs" / "error.log").read_text(encoding="utf-8")
    assert "feed_exploded" in error_log
    assert "routine_event" not in error_log


def test_source_logger_writes_slugged_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _switch_home(monkeypatch, tmp_path / "a")
    source_logger("Agence Nord").info("job_completed", job_id="j1")

    logs = _switch_home(monkeypatch, tmp_path / "b")
    source_logger("Agence Nord").info("job_completed", job_id="j2")

    path = source_log_file("Agence Nord")
    assert path == logs / "sources" / "agence-nord.log"
    text = path.read_text(encoding="utf-8")
    assert '"source": "Agence Nord"' in text
    assert "j2" in text and "j1" not in text
    assert list(available_source_logs()) == [path]


def test_tail_log(tmp_path: Path) -> None:
    path = tmp_path / "ingest.log"
    path.write_text("".join(f"line {i}\n" for i in range(5)), encoding="utf-8")
    assert tail_log(path, 2) == ["line 3\n", "line 4\n"]
    assert tail_log(path, 50) == [f"line {i}\n" for i in range(5)]
    assert tail_log(path, 0) == []
    assert tail_log(tmp_path / "missing.log") == []
