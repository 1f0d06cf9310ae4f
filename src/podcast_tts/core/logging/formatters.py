"""
Log formatters and terminal colors.

JsonlFormatter writes one JSON object per line for the rotating log file.
ColoredConsoleFormatter writes a compact human-readable line:

    14:30:05 [ INFO  ] (a1b2c3d4) chunk_synthesized index=3 bytes=41233 0.812s

Colors are dropped when stdout is not a TTY, or when NO_COLOR or
PODCAST_TTS_NO_COLOR=1 is set.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict


class Colors:
    """ANSI escape codes."""
    RESET = "\033[0m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    GRAY = "\033[90m"
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


_TAG_COLORS = {
    "SUCCESS": Colors.BRIGHT_GREEN,
    "FAIL": Colors.BRIGHT_RED,
    "ERROR": Colors.BRIGHT_RED,
    "WARN": Colors.BRIGHT_YELLOW,
    "INFO": Colors.BRIGHT_CYAN,
    "DEBUG": Colors.GRAY,
}


def supports_color() -> bool:
    """Return True when ANSI colors should be written to stdout."""
    if os.getenv("PODCAST_TTS_NO_COLOR", "0") == "1":
        return False
    if os.getenv("NO_COLOR"):
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def get_tag_color(tag: str) -> str:
    return _TAG_COLORS.get(tag.upper(), Colors.RESET)


def _use_colors() -> bool:
    # Read at format time so tests can flip the flag.
    import podcast_tts.core.logging as log_module
    return bool(getattr(log_module, "USE_COLORS", False))


def colorize(text: str, color: str) -> str:
    if not _use_colors():
        return text
    return f"{color}{text}{Colors.RESET}"


class JsonlFormatter(logging.Formatter):
    """
    Format records as JSON Lines.

    Keys: ts, level, tag, message, request_id, and when present event,
    seconds and extra (the keyword fields passed to the log helpers).
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        event = getattr(record, "event", None)
        if event:
            payload["event"] = event
        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Format records for the terminal.

    Durations are green under 1s, yellow under 10s and red above, since a
    single chunk call normally takes around a second.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        rid = getattr(record, "request_id", "-")

        parts = [
            colorize(ts, Colors.DIM),
            colorize(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if rid != "-":
            parts.append(colorize(f"({rid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(colorize(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            if seconds < 1.0:
                color = Colors.GREEN
            elif seconds < 10.0:
                color = Colors.YELLOW
            else:
                color = Colors.RED
            parts.append(colorize(f"{seconds:.3f}s", color))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for key, value in extra_data.items():
                parts.append(colorize(f"{key}={value}", self._field_color(key, value)))

        return " ".join(parts)

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        # Money and truncation deserve attention on a busy console.
        if key in ("cost_estimate", "truncated_bytes") and isinstance(value, (int, float)) and value > 0:
            return Colors.YELLOW
        if key == "cache_status":
            return Colors.GREEN if value != "miss" else Colors.CYAN
        return Colors.DIM
