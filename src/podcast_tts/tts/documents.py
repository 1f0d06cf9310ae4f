"""
Durable JSON Documents with Optimistic Read-Modify-Write.

The episode index, the usage ledger and the processing log are each one
JSON document that is read in full, changed in memory and written back in
full. Two writers doing that at the same time would silently drop one
update, so every write is conditional on the version that was read:

    doc = JsonDocument(store, "data/usage-stats.json", default=lambda: {"history": {}})

    def add(data):
        data["history"]["2025-01"]["charsUsed"] += 500

    doc.update(add)   # re-reads and re-applies on VersionConflictError

The mutate callback may run more than once and must only touch the dict it
is given.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Optional, Tuple, TypeVar

from podcast_tts.core.errors import ErrorCode, StorageError, VersionConflictError
from podcast_tts.core.logging import get_logger, verbose, warn
from podcast_tts.tts.storage import JSON_CONTENT_TYPE, BlobStore

_LOG = get_logger("podcast-tts.documents")

T = TypeVar("T")


class JsonDocument:
    """
    A JSON value stored under one blob key.

    Args:
        store: Blob store holding the document.
        key: Blob key.
        default: Factory for the value of a missing document.
        max_attempts: Conditional write attempts before giving up.
    """

    def __init__(
        self,
        store: BlobStore,
        key: str,
        default: Callable[[], Any] = dict,
        max_attempts: int = 5,
    ):
        self._store = store
        self._key = key
        self._default = default
        self._max_attempts = max(1, max_attempts)

    @property
    def key(self) -> str:
        return self._key

    def _decode(self, raw: bytes) -> Any:
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            # Never fall back to the default here: writing it back would
            # wipe the durable history.
            raise StorageError(
                f"document {self._key} is not valid JSON: {e}",
                details={"key": self._key},
            ) from e

    def read_versioned(self) -> Tuple[Any, Optional[str]]:
        """Return (value, version); version is None for a missing document."""
        obj = self._store.read(self._key)
        if obj is None:
            return self._default(), None
        return self._decode(obj.data), obj.version

    def read(self) -> Any:
        return self.read_versioned()[0]

    def update(self, mutate: Callable[[Any], T]) -> T:
        """
        Apply mutate to the current value and write it back atomically.

        mutate changes the value in place and may return a result, which is
        passed through once the write succeeds.

        Raises:
            StorageError: With code VERSION_CONFLICT when every attempt lost
                the race, or on unreadable documents.
        """
        for attempt in range(1, self._max_attempts + 1):
            value, version = self.read_versioned()
            result = mutate(value)
            payload = json.dumps(value, indent=2, ensure_ascii=False).encode("utf-8")
            try:
                self._store.put_if_version(self._key, payload, JSON_CONTENT_TYPE, version)
            except VersionConflictError:
                verbose(_LOG, "document_conflict", key=self._key, attempt=attempt)
                continue
            return result

        warn(_LOG, "document_conflict_exhausted", key=self._key, attempts=self._max_attempts)
        raise StorageError(
            f"could not update {self._key} after {self._max_attempts} attempts",
            code=ErrorCode.VERSION_CONFLICT,
            details={"key": self._key},
        )
