"""Logging setup: JSON lines on stdlib handlers, structlog on top."""

from __future__ import annotations

import logging
import logging.config
import os
from collections import deque
from pathlib import Path
from typing import Iterable

import structlog
from pythonjsonlogger import jsonlogger

from .config.loader import HOME_ENV_VAR

ROOT_LOGGER = "ldes_crawler"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Log directory the stdlib handlers currently write to.
_configured_dir: Path | None = None


def default_log_dir() -> Path:
    home = os.environ.get(HOME_ENV_VAR)
    root = Path(home).expanduser() if home else Path.cwd()
    return root.resolve() / "logs"


def stream_log_path(stream_name: str) -> Path:
    return default_log_dir() / "streams" / f"{stream_name}.log"


def _json_formatter() -> logging.Formatter:
    return jsonlogger.JsonFormatter(JSON_FORMAT)


def _file_handler(path: Path, level: str) -> dict[str, str]:
    path.touch(exist_ok=True)
    return {
        "class": "logging.FileHandler",
        "level": level,
        "filename": str(path),
        "encoding": "utf-8",
        "formatter": "json",
    }


def _configure_structlog() -> None:
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
    """Route ``ldes_crawler.*`` loggers to the console, ``crawler.log`` and ``error.log``.

    Handlers are rebuilt only when the log directory changes; ``verbose``
    always adjusts the level.
    """

    global _configured_dir
    level = "DEBUG" if verbose else "INFO"
    log_dir = default_log_dir()
    if log_dir != _configured_dir:
        (log_dir / "streams").mkdir(parents=True, exist_ok=True)
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {"json": {"()": _json_formatter}},
                "handlers": {
                    "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
                    "crawler_file": _file_handler(log_dir / "crawler.log", "INFO"),
                    "error_file": _file_handler(log_dir / "error.log", "ERROR"),
                },
                "loggers": {
                    ROOT_LOGGER: {
                        "handlers": ["console", "crawler_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )
        _configure_structlog()
        _configured_dir = log_dir
    else:
        logging.getLogger(ROOT_LOGGER).setLevel(level)
    return structlog.get_logger(ROOT_LOGGER)


def stream_logger(stream_name: str, verbose: bool = False) -> structlog.BoundLogger:
    """Logger bound to one stream; its records also land in ``streams/<name>.log``."""

    configure_logging(verbose)
    path = stream_log_path(stream_name)
    logger_name = f"{ROOT_LOGGER}.stream.{stream_name}"
    py_logger = logging.getLogger(logger_name)
    for handler in list(py_logger.handlers):
        if isinstance(handler, logging.FileHandler) and handler.baseFilename != str(path):
            # Left over from an earlier log directory.
            py_logger.removeHandler(handler)
            handler.close()
    if not py_logger.handlers:
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(_json_formatter())
        handler.setLevel(logging.INFO)
        py_logger.addHandler(handler)
    return structlog.get_logger(logger_name).bind(stream=stream_name)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return list(deque(stream, maxlen=line_count))


def available_stream_logs() -> Iterable[Path]:
    return sorted((default_log_dir() / "streams").glob("*.log"))


__all__ = [
    "available_stream_logs",
    "configure_logging",
    "default_log_dir",
    "stream_log_path",
    "stream_logger",
    "tail_log",
]
