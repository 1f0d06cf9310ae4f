"""
podcast-tts Structured Logging.

Every module logs named events with key=value fields through the helper
functions below, so console output and the JSONL file share one shape:

    from podcast_tts.core.logging import get_logger, info, verbose

    _LOG = get_logger("podcast-tts.synthesizer")
    info(_LOG, "episode_started", chars=1840, item_key="https://...")
    verbose(_LOG, "chunk_synthesized", index=2, seconds=0.84)

Log Levels:
    1 = MINIMAL  - Startup, shutdown, failures
    2 = NORMAL   - Episode lifecycle, cache gate results (default)
    3 = VERBOSE  - Per-chunk timing, retries, truncation
    4 = DEBUG    - Internal state

Configuration:
    export PODCAST_TTS_LOG_LEVEL=3
    export PODCAST_TTS_LOG_DIR=logs     # enables the JSONL file
    export PODCAST_TTS_NO_COLOR=1

    In settings.yaml:
        logging:
          level: 2
          log_dir: logs
          jsonl_file: podcast-tts.jsonl

Module Structure:
    - levels.py: LogLevel enum and mapping to Python levels
    - context.py: Request id and configuration state
    - formatters.py: JSONL and colored console formatters
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Union

from .context import (
    get_level,
    get_level_name,
    get_log_config,
    get_request_id,
    is_configured,
    read_logging_config,
    set_configured,
    set_level,
    set_log_config,
    set_request_id,
)
from .formatters import ColoredConsoleFormatter, Colors, JsonlFormatter, supports_color
from .levels import LEVEL_MAP, LEVEL_NAMES, LogLevel, coerce_level

# Checked by the formatters on every record; tests may flip it.
USE_COLORS = supports_color()


def configure_logging(level: Optional[Union[int, str, LogLevel]] = None, force: bool = False) -> None:
    """
    Configure the root logger once.

    Args:
        level: Log level (1-4, level name, or LogLevel). Defaults to the
            configured level, then NORMAL.
        force: Reconfigure even if logging was already set up.
    """
    global USE_COLORS

    if is_configured() and not force:
        return

    USE_COLORS = supports_color()

    log_config = read_logging_config()
    set_log_config(log_config)

    current = coerce_level(level if level is not None else log_config.get("level", LogLevel.NORMAL))
    set_level(current)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG - 10)
    root.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(LEVEL_MAP.get(current, logging.INFO))
    console.setFormatter(ColoredConsoleFormatter())
    root.addHandler(console)

    log_dir = log_config.get("log_dir")
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            Path(log_dir) / str(log_config.get("jsonl_file", "podcast-tts.jsonl")),
            maxBytes=int(log_config.get("rotate_max_bytes", 10 * 1024 * 1024)),
            backupCount=int(log_config.get("rotate_backup_count", 5)),
            encoding="utf-8",
            delay=True,
        )
        file_handler.setLevel(logging.DEBUG - 10)
        file_handler.setFormatter(JsonlFormatter())
        root.addHandler(file_handler)

    set_configured(True)


def get_logger(name: str = "podcast-tts") -> logging.Logger:
    """Get a logger, configuring logging on first use."""
    configure_logging()
    return logging.getLogger(name)


def _log(logger: logging.Logger, py_level: int, tag: str, msg: str, numeric_level: int, **fields: Any) -> None:
    if numeric_level > get_level():
        return

    event = fields.pop("event", None)
    seconds = fields.pop("seconds", None)
    logger.log(
        py_level,
        msg,
        extra={
            "tag": tag,
            "request_id": get_request_id(),
            "event": event,
            "seconds": seconds,
            "extra_data": fields or None,
            "numeric_level": numeric_level,
        },
    )


def info(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log at NORMAL."""
    _log(logger, logging.INFO, "INFO", msg, 2, **fields)


def warn(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a warning at NORMAL."""
    _log(logger, logging.WARNING, "WARN", msg, 2, **fields)


def error(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log an error at MINIMAL."""
    _log(logger, logging.ERROR, "ERROR", msg, 1, **fields)


def success(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.INFO, "SUCCESS", msg, 2, **fields)


def fail(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.ERROR, "FAIL", msg, 1, **fields)


def verbose(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log at VERBOSE (level 3 and up)."""
    _log(logger, logging.DEBUG, "INFO", msg, 3, **fields)


def debug(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log at DEBUG (level 4)."""
    _log(logger, logging.DEBUG - 5, "DEBUG", msg, 4, **fields)


__all__ = [
    "LogLevel",
    "LEVEL_MAP",
    "LEVEL_NAMES",
    "coerce_level",
    "Colors",
    "supports_color",
    "JsonlFormatter",
    "ColoredConsoleFormatter",
    "get_request_id",
    "set_request_id",
    "get_level",
    "set_level",
    "get_level_name",
    "get_log_config",
    "configure_logging",
    "get_logger",
    "info",
    "warn",
    "error",
    "success",
    "fail",
    "verbose",
    "debug",
]
