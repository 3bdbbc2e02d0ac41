"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Iterable

import structlog

_LOGGING_INITIALISED = False
_LEVELS = ("ERROR", "WARNING", "INFO", "DEBUG")


def _default_log_dir() -> Path:
    env_root = os.environ.get("CASE_HARVESTER_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def configure_logging(verbose: bool = False, level: str | None = None) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger.

    ``verbose`` wins over ``level``; ``level`` is the persisted verbosity
    preference (ERROR/WARNING/INFO/DEBUG).
    """

    global _LOGGING_INITIALISED
    log_dir = _default_log_dir()
    error_log = log_dir / "error.log"
    harvester_log = log_dir / "harvester.log"
    batches_dir = log_dir / "batches"
    batches_dir.mkdir(parents=True, exist_ok=True)
    error_log.touch(exist_ok=True)
    harvester_log.touch(exist_ok=True)

    if not _LOGGING_INITIALISED:
        if verbose:
            resolved = "DEBUG"
        else:
            resolved = (level or "INFO").upper()
            if resolved not in _LEVELS:
                resolved = "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": resolved,
                        "formatter": "plain",
                    },
                    "harvester_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(harvester_log),
                        "formatter": "plain",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "plain",
                    },
                },
                "loggers": {
                    "case_harvester": {
                        "handlers": ["console", "harvester_file", "error_file"],
                        "level": resolved,
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
        _LOGGING_INITIALISED = True
    return structlog.get_logger("case_harvester")


def batch_logger(kind: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to one item kind, writing to its own file too."""

    logger = configure_logging(verbose)
    batch_log_path = _default_log_dir() / "batches" / f"{kind}.log"
    batch_log_path.parent.mkdir(parents=True, exist_ok=True)

    logger_name = f"case_harvester.batch.{kind}"
    py_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(batch_log_path)
        for handler in py_logger.handlers
    ):
        file_handler = logging.FileHandler(batch_log_path, encoding="utf-8")
        global_logger = logging.getLogger("case_harvester")
        if global_logger.handlers:
            file_handler.setFormatter(global_logger.handlers[0].formatter)
        file_handler.setLevel(logging.INFO)
        py_logger.addHandler(file_handler)

    return structlog.get_logger(logger_name).bind(batch=kind)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def log_dir() -> Path:
    return _default_log_dir()


def available_batch_logs() -> Iterable[Path]:
    """Yield available per-batch log file paths."""

    batches_dir = _default_log_dir() / "batches"
    if not batches_dir.exists():
        return []
    return sorted(p for p in batches_dir.glob("*.log"))


__all__ = ["configure_logging", "batch_logger", "tail_log", "log_dir", "available_batch_logs"]
