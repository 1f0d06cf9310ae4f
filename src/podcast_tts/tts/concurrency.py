"""
Per-key Serialization of Episode Production.

Checking whether an artifact exists and then producing it is not atomic:
two requests for the same article could both see "absent" and both pay for
synthesis. KeyedLock gives each artifact key its own lock so that the
second request waits, then finds the finished artifact through the cache
gate. Requests for different keys do not block each other.

Locks are reference counted and dropped when the last holder leaves, so
the table does not grow with every article ever seen.

Usage:
    locks = KeyedLock()
    with locks.hold("audio/my-article-1a2b3c4d.mp3", timeout=600):
        ...

This serializes within one process. Multiple processes or hosts rely on
the checkpoint fingerprint and the conditional document writes instead.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from podcast_tts.core.logging import debug, get_logger

_LOG = get_logger("podcast-tts.concurrency")


class LockTimeout(TimeoutError):
    """Raised when a keyed lock is not acquired in time."""


@dataclass
class _Entry:
    lock: threading.Lock
    holders: int = 0


class KeyedLock:
    """A lock per key, created on demand."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the lock for key.

        Raises:
            LockTimeout: If the lock was not acquired within timeout.
        """
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry(lock=threading.Lock())
            entry.holders += 1

        acquired = entry.lock.acquire(timeout=timeout if timeout is not None else -1)
        try:
            if not acquired:
                raise LockTimeout(f"timed out waiting for lock on {key}")
            debug(_LOG, "key_locked", key=key)
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(key, None)
