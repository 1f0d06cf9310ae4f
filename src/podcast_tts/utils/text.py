"""
Text helpers shared by the chunker, synthesizer and pipeline.

The synthesis service limits input by UTF-8 bytes, not characters, so byte
accounting lives here next to the slug and duration helpers used when
naming and describing episodes.
"""
from __future__ import annotations

import re
import unicodedata

_WS_RE = re.compile(r"\s+")
_SLUG_DROP_RE = re.compile(r"[^a-z0-9\s-]")
_SLUG_DASH_RE = re.compile(r"[\s_-]+")

SLUG_MAX_CHARS = 80
WORDS_PER_SECOND = 3.0


def utf8_len(text: str) -> int:
    """Length of ``text`` in UTF-8 bytes."""
    return len(text.encode("utf-8"))


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def text_preview(text: str, limit: int) -> str:
    """Single-line preview for logs; empty when limit is 0."""
    if limit <= 0:
        return ""
    flat = collapse_whitespace(text)
    return flat if len(flat) <= limit else flat[:limit] + "..."


def slugify(title: str, max_chars: int = SLUG_MAX_CHARS) -> str:
    """
    Filesystem- and URL-safe slug for an episode title.

    Accents are folded to ASCII, anything else non-alphanumeric is dropped,
    and runs of whitespace, underscores and dashes become one dash.

    >>> slugify("Hello, World: Part 2!")
    'hello-world-part-2'
    """
    folded = unicodedata.normalize("NFKD", title or "").encode("ascii", "ignore").decode("ascii")
    slug = _SLUG_DROP_RE.sub("", folded.lower())
    slug = _SLUG_DASH_RE.sub("-", slug).strip("-")
    slug = slug[:max_chars].rstrip("-")
    return slug or "untitled"


def estimate_audio_duration(text: str) -> int:
    """Rough narration length in seconds at three words per second."""
    words = len((text or "").split())
    return int(round(words / WORDS_PER_SECOND))
