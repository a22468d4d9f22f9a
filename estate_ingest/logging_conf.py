"""Logging configuration built around structlog JSON logging.

Global events go to ``logs/ingest.log`` (errors also to ``logs/error.log``);
every source gets its own ``logs/sources/<slug>.log`` carrying the job events
of that source. The log directory follows ``ESTATE_INGEST_HOME`` and file
handlers are re-pointed when it changes within one process.
"""

from __future__ import annotations

import logging
import logging.config
import os
from collections import deque
from pathlib import Path
from typing import Iterable

import structlog

ROOT_LOGGER = "estate_ingest"
SOURCE_LOGGER_PREFIX = f"{ROOT_LOGGER}.source."

_FILE_HANDLERS = {"ingest_file": "ingest.log", "error_file": "error.log"}
_configured_dir: Path | None = None


def _default_log_dir() -> Path:
    env_root = os.environ.get("ESTATE_INGEST_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def _slug(source_name: str) -> str:
    return "".join(ch.lower() if ch.isalnum() else "-" for ch in source_name).strip("-")


def _replace_file_handler(py_logger: logging.Logger, old: logging.FileHandler, path: Path) -> None:
    new = logging.FileHandler(path, encoding="utf-8")
    new.name = old.name
    new.setLevel(old.level)
    new.setFormatter(old.formatter)
    py_logger.removeHandler(old)
    old.close()
    py_logger.addHandler(new)


def _retarget(log_dir: Path) -> None:
    app_logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(app_logger.handlers):
        if isinstance(handler, logging.FileHandler) and handler.name in _FILE_HANDLERS:
            _replace_file_handler(app_logger, handler, log_dir / _FILE_HANDLERS[handler.name])


def _configure_stdlib(level: str, log_dir: Path) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                    "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": "json",
                },
                "ingest_file": {
                    "class": "logging.FileHandler",
                    "level": "INFO",
                    "filename": str(log_dir / _FILE_HANDLERS["ingest_file"]),
                    "formatter": "json",
                    "encoding": "utf-8",
                },
                "error_file": {
                    "class": "logging.FileHandler",
                    "level": "ERROR",
                    "filename": str(log_dir / _FILE_HANDLERS["error_file"]),
                    "formatter": "json",
                    "encoding": "utf-8",
                },
            },
            "loggers": {
                ROOT_LOGGER: {
                    "handlers": ["console", "ingest_file", "error_file"],
                    "level": level,
                    "propagate": False,
                },
            },
        }
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return the application logger."""

    global _configured_dir
    log_dir = _default_log_dir()
    (log_dir / "sources").mkdir(parents=True, exist_ok=True)

    if _configured_dir is None:
        _configure_stdlib("DEBUG" if verbose else "INFO", log_dir)
        _configured_dir = log_dir
    elif _configured_dir != log_dir:
        _retarget(log_dir)
        _configured_dir = log_dir
    if verbose:
        logging.getLogger(ROOT_LOGGER).setLevel(logging.DEBUG)
    return structlog.get_logger(ROOT_LOGGER)


def source_logger(source_name: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to ``source`` that also writes the source's own log file."""

    configure_logging(verbose)
    path = source_log_file(source_name)
    py_logger = logging.getLogger(f"{SOURCE_LOGGER_PREFIX}{_slug(source_name)}")

    current = [h for h in py_logger.handlers if isinstance(h, logging.FileHandler)]
    if not any(h.baseFilename == str(path) for h in current):
        if current:
            _replace_file_handler(py_logger, current[0], path)
        else:
            handler = logging.FileHandler(path, encoding="utf-8")
            handler.setLevel(logging.INFO)
            app_handlers = logging.getLogger(ROOT_LOGGER).handlers
            if app_handlers:
                handler.setFormatter(app_handlers[0].formatter)
            py_logger.addHandler(handler)

    return structlog.get_logger(py_logger.name).bind(source=source_name)


def source_log_file(source_name: str) -> Path:
    return _default_log_dir() / "sources" / f"{_slug(source_name)}.log"


def main_log_file() -> Path:
    return _default_log_dir() / _FILE_HANDLERS["ingest_file"]


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last ``line_count`` lines of a log file."""

    if line_count <= 0 or not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="replace") as stream:
        return list(deque(stream, maxlen=line_count))


def available_source_logs() -> Iterable[Path]:
    sources_dir = _default_log_dir() / "sources"
    if not sources_dir.exists():
        return []
    return sorted(sources_dir.glob("*.log"))


__all__ = [
    "available_source_logs",
    "configure_logging",
    "main_log_file",
    "source_log_file",
    "source_logger",
    "tail_log",
]
