"""
Text Chunking under a Byte Ceiling.

The synthesis service rejects any single request above 5000 UTF-8 bytes, so
articles are cut into chunks that stay well below that limit while keeping
natural boundaries wherever possible.

Boundary cascade (coarsest first):
    1. Paragraphs (blank lines)
    2. Sentences (after . ? !)
    3. Clauses (after , ; : and parentheses)
    4. Forced slices at the last whitespace inside the window, or a hard
       character cut when there is none

Sizes:
    safe_size = int(target_size * safety_factor) characters. Keeping the
    character budget below the target leaves headroom for multi-byte text;
    the byte ceiling (max_bytes) is checked on every append as well, so
    the guarantee holds for any script.

A forced fragment that does not end a sentence gets a trailing period so
the voice drops its intonation at the cut instead of running on.

Example:
    >>> from podcast_tts.tts.chunker import chunk_text
    >>> result = chunk_text("First paragraph.\\n\\nSecond one.", target_size=1000)
    >>> [c.text for c in result.chunks]
    ['First paragraph.\\n\\nSecond one.']
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

from podcast_tts.core.errors import InputError
from podcast_tts.core.logging import get_logger, verbose
from podcast_tts.utils.text import utf8_len
from podcast_tts.utils.timeit import timeit

_LOG = get_logger("podcast-tts.chunker")


# =============================================================================
# Regex Patterns for Text Splitting
# =============================================================================

# Blank line, possibly containing spaces or tabs
_PARA_SPLIT = re.compile(r"\n\s*\n")

# Whitespace following a sentence terminator; the terminator stays left
_SENT_SPLIT = re.compile(r"(?<=[.?!])\s+")

# Whitespace following secondary punctuation
_CLAUSE_SPLIT = re.compile(r"(?<=[,;:()])\s+")

_SENTENCE_END = (".", "!", "?")

# Forced slices use this share of the safe size, leaving room for the
# appended period and for the accumulator separator.
FORCED_WINDOW_FACTOR = 0.9

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class TextChunk:
    """
    One synthesis unit.

    Attributes:
        index: Ordinal position, starting at 0.
        text: Chunk text, never empty.
        byte_length: UTF-8 size of text, computed on construction.
    """
    index: int
    text: str
    byte_length: int = field(init=False)

    def __post_init__(self) -> None:
        if not self.text:
            raise ValueError("chunk text must not be empty")
        self.byte_length = utf8_len(self.text)


@dataclass
class ChunkResult:
    """
    Result of text chunking.

    Attributes:
        chunks: Ordered chunks ready for synthesis.
        safe_size: Character budget that was applied.
        timings_s: Timing measurements in seconds.
    """
    chunks: List[TextChunk]
    safe_size: int
    timings_s: Dict[str, float]

    @property
    def texts(self) -> List[str]:
        return [c.text for c in self.chunks]


# =============================================================================
# Accumulator
# =============================================================================

class _Accumulator:
    """Greedy packer that flushes when the next piece would not fit."""

    def __init__(self, safe_size: int, max_bytes: int):
        self.safe_size = safe_size
        self.max_bytes = max_bytes
        self.current = ""
        self.out: List[str] = []

    def fits(self, text: str) -> bool:
        return len(text) <= self.safe_size and utf8_len(text) <= self.max_bytes

    def add(self, piece: str, separator: str) -> None:
        if not self.current:
            self.current = piece
            return
        joined = self.current + separator + piece
        if self.fits(joined):
            self.current = joined
        else:
            self.flush()
            self.current = piece

    def flush(self) -> None:
        text = self.current.strip()
        if text:
            self.out.append(text)
        self.current = ""


# =============================================================================
# Splitting Helpers
# =============================================================================

def split_paragraphs(text: str) -> List[str]:
    return [p.strip() for p in _PARA_SPLIT.split(text) if p.strip()]


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENT_SPLIT.split(text) if s.strip()]


def split_clauses(text: str) -> List[str]:
    return [c.strip() for c in _CLAUSE_SPLIT.split(text) if c.strip()]


def _last_whitespace(text: str, end: int) -> int:
    """Index of the last whitespace at or before ``end``, or -1."""
    for i in range(min(end, len(text) - 1), -1, -1):
        if text[i].isspace():
            return i
    return -1


def force_slices(text: str, safe_size: int, max_bytes: int) -> Iterator[str]:
    """
    Slice text that has no usable punctuation boundary.

    Each fragment holds at most int(safe_size * 0.9) characters and at most
    max_bytes - 1 bytes before its closing period is added. Every round
    consumes at least one character, so the remaining text strictly
    shrinks and the loop ends.
    """
    window = max(1, int(safe_size * FORCED_WINDOW_FACTOR))
    remaining = text.strip()

    while remaining:
        if len(remaining) <= window and utf8_len(remaining) < max_bytes:
            cut = len(remaining)
        else:
            cut = min(window, len(remaining))
            space = _last_whitespace(remaining, cut)
            # Whitespace too close to the start would leave a tiny fragment
            if space > window // 3:
                cut = space
            while cut > 1 and utf8_len(remaining[:cut]) > max_bytes - 1:
                cut -= 1

        fragment = remaining[:cut].strip()
        remaining = remaining[cut:].lstrip()
        if not fragment:
            continue
        if not fragment.endswith(_SENTENCE_END):
            fragment += "."
        yield fragment


# =============================================================================
# Public API
# =============================================================================

def chunk_text(
    text: str,
    target_size: int = 1000,
    safety_factor: float = 0.7,
    max_bytes: int = 5000,
) -> ChunkResult:
    """
    Split text into ordered chunks under both the safe size and max_bytes.

    Args:
        text: Input text; must contain something other than whitespace.
        target_size: Target chunk size in characters.
        safety_factor: Fraction of target_size used as the budget.
        max_bytes: UTF-8 ceiling for every chunk.

    Returns:
        ChunkResult with at least one chunk.

    Raises:
        InputError: If text is empty or whitespace only.
        ValueError: If the sizing arguments are unusable.
    """
    if text is None or not text.strip():
        raise InputError("text is empty")
    if target_size <= 0 or max_bytes <= 1:
        raise ValueError("target_size and max_bytes must be positive")
    if not (0.0 < safety_factor <= 1.0):
        raise ValueError(f"safety_factor must be in (0, 1], got {safety_factor}")

    safe_size = max(1, int(target_size * safety_factor))
    acc = _Accumulator(safe_size, max_bytes)

    with timeit("chunk") as t:
        trimmed = text.strip()
        if acc.fits(trimmed):
            pieces = [trimmed]
        else:
            for para in split_paragraphs(trimmed):
                if acc.fits(para):
                    acc.add(para, PARAGRAPH_SEPARATOR)
                    continue
                # The first piece of a split paragraph still follows a paragraph break
                separator = PARAGRAPH_SEPARATOR
                for sentence in split_sentences(para):
                    if acc.fits(sentence):
                        acc.add(sentence, separator)
                        separator = SENTENCE_SEPARATOR
                        continue
                    for clause in split_clauses(sentence):
                        if acc.fits(clause):
                            acc.add(clause, separator)
                            separator = SENTENCE_SEPARATOR
                            continue
                        for fragment in force_slices(clause, safe_size, max_bytes):
                            acc.add(fragment, separator)
                            separator = SENTENCE_SEPARATOR
            acc.flush()
            pieces = acc.out

    chunks = [TextChunk(index=i, text=piece) for i, piece in enumerate(pieces)]
    timings = {"chunk": t.timing.seconds if t.timing else 0.0}

    verbose(
        _LOG,
        "chunked",
        chars=len(text),
        chunks=len(chunks),
        safe_size=safe_size,
        max_chunk_bytes=max(c.byte_length for c in chunks),
        seconds=round(timings["chunk"], 4),
    )
    return ChunkResult(chunks=chunks, safe_size=safe_size, timings_s=timings)
