"""Logging configuration helpers for trajsim.

The library is silent by default: the ``trajsim`` logger only carries a
``NullHandler``. Call one of the ``enable_*`` helpers to see kernel output.

Example usage:
    import trajsim

    trajsim.enable_console_logging(level="DEBUG")
    trajsim.enable_file_logging("runs/sim.log", max_bytes=10_000_000)
    trajsim.enable_json_logging()
    trajsim.configure_from_env()

Environment variables:
    TS_LOGGING: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    TS_LOG_FILE: Path to log file (enables rotating file logging)
    TS_LOG_JSON: Set to "1" for JSON output
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Literal

__all__ = [
    "configure_from_env",
    "disable_logging",
    "enable_console_logging",
    "enable_file_logging",
    "enable_json_file_logging",
    "enable_json_logging",
    "enable_timed_file_logging",
    "set_level",
    "set_module_level",
]

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

LOGGER_NAME = "trajsim"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class JsonFormatter(logging.Formatter):
    """Formats log records as one JSON object per line.

    Records emitted from inside a running simulation carry the simulated
    time in ``sim_time`` when the caller passes it via ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        sim_time = getattr(record, "sim_time", None)
        if sim_time is not None:
            log_data["sim_time"] = sim_time
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def _get_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def _get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def _clear_handlers() -> None:
    """Remove and close every non-null handler on the trajsim logger."""
    logger = _get_logger()
    for handler in logger.handlers[:]:
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)
            handler.close()


def _install(handler: logging.Handler, level: LogLevel | int, formatter: logging.Formatter):
    logger = _get_logger()
    logger.setLevel(_get_level(level))
    handler.setLevel(_get_level(level))
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return handler


def _prepare_path(path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def enable_console_logging(
    level: LogLevel | int = "INFO",
    format: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> logging.StreamHandler:
    """Log to stderr.

    Example:
        >>> import trajsim
        >>> trajsim.enable_console_logging(level="DEBUG")
    """
    return _install(logging.StreamHandler(), level, logging.Formatter(format, date_format))


def enable_file_logging(
    path: str | Path,
    level: LogLevel | int = "INFO",
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    format: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> RotatingFileHandler:
    """Log to a size-rotated file. Parent directories are created.

    Args:
        path: Log file location.
        level: Log level name or int.
        max_bytes: Size at which the file is rolled over.
        backup_count: Number of rolled files kept.
    """
    handler = RotatingFileHandler(_prepare_path(path), maxBytes=max_bytes, backupCount=backup_count)
    return _install(handler, level, logging.Formatter(format, date_format))


def enable_timed_file_logging(
    path: str | Path,
    level: LogLevel | int = "INFO",
    when: str = "midnight",
    interval: int = 1,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    format: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> TimedRotatingFileHandler:
    """Log to a file rotated on a wall-clock interval (see TimedRotatingFileHandler)."""
    handler = TimedRotatingFileHandler(
        _prepare_path(path), when=when, interval=interval, backupCount=backup_count
    )
    return _install(handler, level, logging.Formatter(format, date_format))


def enable_json_logging(level: LogLevel | int = "INFO") -> logging.StreamHandler:
    """Log JSON lines to stderr."""
    return _install(logging.StreamHandler(), level, JsonFormatter())


def enable_json_file_logging(
    path: str | Path,
    level: LogLevel | int = "INFO",
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> RotatingFileHandler:
    """Log JSON lines to a size-rotated file."""
    handler = RotatingFileHandler(_prepare_path(path), maxBytes=max_bytes, backupCount=backup_count)
    return _install(handler, level, JsonFormatter())


def configure_from_env() -> None:
    """Configure logging from ``TS_LOGGING``, ``TS_LOG_FILE`` and ``TS_LOG_JSON``.

    Does nothing when neither a level nor a file is set.
    """
    level = os.environ.get("TS_LOGGING", "").upper()
    log_file = os.environ.get("TS_LOG_FILE", "")
    use_json = os.environ.get("TS_LOG_JSON", "") == "1"

    if not level and not log_file:
        return

    level = level or "INFO"

    if use_json:
        if log_file:
            enable_json_file_logging(log_file, level=level)
        else:
            enable_json_logging(level=level)
    elif log_file:
        enable_file_logging(log_file, level=level)
    else:
        enable_console_logging(level=level)


def set_level(level: LogLevel | int) -> None:
    """Set the level of the package logger."""
    _get_logger().setLevel(_get_level(level))


def set_module_level(module: str, level: LogLevel | int) -> None:
    """Set the level of one submodule logger, e.g. ``"core.simulation"``."""
    logging.getLogger(f"{LOGGER_NAME}.{module}").setLevel(_get_level(level))


def disable_logging() -> None:
    """Remove all handlers and silence the package logger."""
    logger = _get_logger()
    _clear_handlers()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.CRITICAL + 1)
