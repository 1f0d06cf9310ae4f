"""
Stage timing.

    with timeit("chunk") as t:
        result = chunk_text(text)
    timings["chunk"] = t.timing.seconds
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    """A finished measurement."""
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """
    Context manager measuring wall time with perf_counter().

    ``timing`` is None inside the block and set on exit, including when the
    block raises.
    """

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self.timing: Optional[Timing] = None
        self._t0 = 0.0

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.timing = Timing(name=self.name, seconds=perf_counter() - self._t0, meta=self.meta)
        return False
