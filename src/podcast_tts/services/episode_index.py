"""
Episode Index (processed-articles.json).

The index is the record of which items already have a finished artifact.
It is what makes episode creation idempotent: an item found here is never
synthesized again.

Document shape:

    {
      "https://example.com/post/": {
        "title": "Post title",
        "processedDate": "2025-01-14T09:30:00+00:00",
        "audioRef": "https://storage.googleapis.com/bucket/audio/post-title-1a2b3c4d.mp3",
        "audioKey": "audio/post-title-1a2b3c4d.mp3",
        "description": "Optional summary"
      }
    }

Entries are committed only after the artifact write has succeeded, so every
entry points at audio that exists. Item keys are usually URLs, and feeds are
inconsistent about trailing slashes, so lookups and removals also try the
alternate form.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from podcast_tts.core.logging import debug, get_logger
from podcast_tts.tts.documents import JsonDocument
from podcast_tts.tts.storage import BlobStore

_LOG = get_logger("podcast-tts.index")


def alternate_key(item_key: str) -> str:
    """The same key with its trailing slash toggled."""
    return item_key[:-1] if item_key.endswith("/") else item_key + "/"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class CacheEntry:
    """
    Index record for one finished item.

    Attributes:
        title: Episode title.
        processed_date: ISO-8601 UTC time of the commit.
        audio_ref: Path or public URL of the artifact.
        description: Optional summary.
        audio_key: Blob key of the artifact (used for deletion).
    """
    title: str
    processed_date: str
    audio_ref: str
    description: Optional[str] = None
    audio_key: Optional[str] = None

    @property
    def processed_at(self) -> Optional[datetime]:
        return parse_timestamp(self.processed_date)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "processedDate": self.processed_date,
            "audioRef": self.audio_ref,
            "description": self.description,
        }
        if self.audio_key:
            data["audioKey"] = self.audio_key
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            title=str(data.get("title", "")),
            processed_date=str(data.get("processedDate", "")),
            audio_ref=str(data.get("audioRef", "")),
            description=data.get("description"),
            audio_key=data.get("audioKey"),
        )


class EpisodeIndex:
    """
    Typed access to the index document.

    Args:
        store: Blob store holding the document.
        key: Document key, e.g. "data/processed-articles.json".
        max_attempts: Conditional write attempts per update.
    """

    def __init__(self, store: BlobStore, key: str, max_attempts: int = 5):
        self._document = JsonDocument(store, key, default=dict, max_attempts=max_attempts)

    @property
    def document(self) -> JsonDocument:
        return self._document

    def lookup(self, item_key: str) -> Optional[CacheEntry]:
        """Find an entry by key or its trailing-slash alternate."""
        data = self._document.read()
        for candidate in (item_key, alternate_key(item_key)):
            raw = data.get(candidate)
            if raw is not None:
                return CacheEntry.from_dict(raw)
        return None

    def commit(self, item_key: str, entry: CacheEntry) -> None:
        """Insert or replace the entry for item_key."""

        def _apply(data: Dict[str, Any]) -> None:
            data[item_key] = entry.to_dict()

        self._document.update(_apply)
        debug(_LOG, "index_committed", item_key=item_key, audio_ref=entry.audio_ref)

    def remove(self, item_keys: Iterable[str]) -> Dict[str, CacheEntry]:
        """
        Remove entries, matching trailing-slash alternates.

        Returns:
            The removed entries keyed by the key actually stored.
        """
        wanted = list(item_keys)

        def _apply(data: Dict[str, Any]) -> Dict[str, CacheEntry]:
            removed: Dict[str, CacheEntry] = {}
            for key in wanted:
                for candidate in (key, alternate_key(key)):
                    if candidate in data:
                        removed[candidate] = CacheEntry.from_dict(data.pop(candidate))
                        break
            return removed

        return self._document.update(_apply)

    def entries(self) -> List[Tuple[str, CacheEntry]]:
        """All entries, newest first. Entries without a valid date sort last."""
        data = self._document.read()
        items = [(key, CacheEntry.from_dict(raw)) for key, raw in data.items()]
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        items.sort(key=lambda kv: kv[1].processed_at or oldest, reverse=True)
        return items

    def __len__(self) -> int:
        return len(self._document.read())
