"""
Request correlation and logging configuration state.

The request id lives in a ContextVar so that every log line emitted while
an episode is being produced carries the same id, in threads and in
asyncio tasks alike. Configuration state is module level and shared.

Environment Variables:
    - PODCAST_TTS_SETTINGS: Path to settings.yaml
    - PODCAST_TTS_LOG_LEVEL: Override log level (1-4 or name)
    - PODCAST_TTS_LOG_DIR: Directory for the JSONL log
    - PODCAST_TTS_JSONL_FILE: JSONL filename
    - PODCAST_TTS_LOG_ROTATE_BYTES: Max JSONL size before rotation
    - PODCAST_TTS_LOG_ROTATE_BACKUP: Rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Return the request id of the current context ("-" when unset)."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Bind a request id to the current context."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(int(_current_level), "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging configuration.

    Priority (highest first): environment variables, the ``logging``
    section of settings.yaml, built-in defaults. A missing or invalid
    settings file is not an error here; logging must come up regardless.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("PODCAST_TTS_SETTINGS", "config/settings.yaml")
    try:
        from podcast_tts.core.config import load_settings
        cfg.update(load_settings(settings_path).raw.get("logging", {}) or {})
    except Exception:
        pass

    if os.getenv("PODCAST_TTS_LOG_LEVEL"):
        cfg["level"] = os.environ["PODCAST_TTS_LOG_LEVEL"]
    if os.getenv("PODCAST_TTS_LOG_DIR"):
        cfg["log_dir"] = os.environ["PODCAST_TTS_LOG_DIR"]
    if os.getenv("PODCAST_TTS_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["PODCAST_TTS_JSONL_FILE"]

    rotate_bytes = _env_int("PODCAST_TTS_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _env_int("PODCAST_TTS_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg
