"""
Audio assembly.

MP3 streams are sequences of self-contained frames, so episode audio is the
byte concatenation of the per-chunk responses in chunk order. Switching to
an encoding with a container (WAV, OGG) would need a real mux step here.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence


@dataclass
class AudioChunk:
    """Synthesized audio for the chunk with the same index."""
    index: int
    audio_bytes: bytes


def assemble_audio(chunks: Sequence[AudioChunk]) -> bytes:
    """
    Concatenate chunk audio in ordinal order.

    Chunks may arrive in any order but their indices must be exactly
    0..n-1. A single chunk is returned unmodified.

    Raises:
        ValueError: If there are no chunks or the indices have gaps or
            duplicates.
    """
    if not chunks:
        raise ValueError("no audio chunks to assemble")

    ordered: List[AudioChunk] = sorted(chunks, key=lambda c: c.index)
    indices = [c.index for c in ordered]
    if indices != list(range(len(ordered))):
        raise ValueError(f"audio chunk indices must be contiguous from 0, got {indices}")

    if len(ordered) == 1:
        return ordered[0].audio_bytes
    return b"".join(c.audio_bytes for c in ordered)
