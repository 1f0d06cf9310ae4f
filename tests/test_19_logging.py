"""Tests for the logging level system and formatters."""
from __future__ import annotations

import json
import logging
import os
from unittest.mock import patch

from podcast_tts.core.logging import (
    ColoredConsoleFormatter,
    JsonlFormatter,
    LogLevel,
    coerce_level,
    get_request_id,
    set_request_id,
)
from podcast_tts.core.logging.context import read_logging_config


class TestLogLevelEnum:
    """Test LogLevel enum values."""

    def test_level_enum_values(self):
        assert LogLevel.MINIMAL == 1
        assert LogLevel.NORMAL == 2
        assert LogLevel.VERBOSE == 3
        assert LogLevel.DEBUG == 4

    def test_level_enum_ordering(self):
        assert LogLevel.MINIMAL < LogLevel.NORMAL < LogLevel.VERBOSE < LogLevel.DEBUG


class TestLevelCoercion:
    """Test level coercion from various input types."""

    def test_level_from_int(self):
        assert coerce_level(1) == LogLevel.MINIMAL
        assert coerce_level(4) == LogLevel.DEBUG

    def test_level_from_string_names(self):
        assert coerce_level("minimal") == LogLevel.MINIMAL
        assert coerce_level("VERBOSE") == LogLevel.VERBOSE
        assert coerce_level("3") == LogLevel.VERBOSE

    def test_level_from_python_levels(self):
        assert coerce_level("WARNING") == LogLevel.MINIMAL
        assert coerce_level("INFO") == LogLevel.NORMAL
        assert coerce_level(logging.WARNING) == LogLevel.MINIMAL
        assert coerce_level(logging.INFO) == LogLevel.NORMAL

    def test_invalid_level_defaults_to_normal(self):
        assert coerce_level("invalid") == LogLevel.NORMAL
        assert coerce_level(None) == LogLevel.NORMAL


class TestRequestId:

    def test_set_and_get(self):
        set_request_id("abc123")
        assert get_request_id() == "abc123"
        set_request_id("-")


class TestReadLoggingConfig:

    def test_environment_overrides(self):
        env = {
            "PODCAST_TTS_SETTINGS": "/nonexistent/settings.yaml",
            "PODCAST_TTS_LOG_LEVEL": "4",
            "PODCAST_TTS_LOG_DIR": "/tmp/podcast-logs",
            "PODCAST_TTS_LOG_ROTATE_BYTES": "2048",
        }
        with patch.dict(os.environ, env):
            cfg = read_logging_config()

        assert cfg["level"] == "4"
        assert cfg["log_dir"] == "/tmp/podcast-logs"
        assert cfg["rotate_max_bytes"] == 2048


def _record(msg="chunk_synthesized", **extra):
    record = logging.LogRecord("podcast-tts.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:

    def test_jsonl_shape(self):
        record = _record(tag="INFO", request_id="r1", seconds=0.5,
                         extra_data={"index": 2, "chars": 693}, numeric_level=3)
        payload = json.loads(JsonlFormatter().format(record))

        assert payload["message"] == "chunk_synthesized"
        assert payload["request_id"] == "r1"
        assert payload["level"] == 3
        assert payload["seconds"] == 0.5
        assert payload["extra"] == {"index": 2, "chars": 693}

    def test_console_contains_fields(self):
        import podcast_tts.core.logging as log_module

        with patch.object(log_module, "USE_COLORS", False):
            line = ColoredConsoleFormatter().format(
                _record(tag="WARN", request_id="r2", extra_data={"truncated_bytes": 600})
            )

        assert "[ WARN  ]" in line
        assert "(r2)" in line
        assert "truncated_bytes=600" in line
        assert "\033[" not in line
