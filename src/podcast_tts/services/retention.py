"""
Retention for Finished Episodes.

Keeps the index (and the audio bucket) bounded. Two operations:

    apply_retention_policy  - keep the newest max_episodes entries and/or
                              entries younger than max_age_days
    remove_items            - remove specific items by key (URL)

Index entries are removed first, then their audio. An index entry must
never point at deleted audio, while orphaned audio is harmless: the cache
gate repairs the entry if the same item is requested again.

Audio deletion failures are logged and counted as not removed; they do not
stop the pass.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from podcast_tts.core.errors import StorageError
from podcast_tts.core.logging import get_logger, info, verbose, warn
from podcast_tts.services.episode_index import CacheEntry, EpisodeIndex, alternate_key
from podcast_tts.tts.storage import BlobStore

_LOG = get_logger("podcast-tts.retention")


@dataclass
class RetentionStats:
    total_before: int
    total_after: int
    removed: int
    audio_files_removed: int = 0
    dry_run: bool = False
    removed_keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RemovalStats:
    requested: int
    found: int = 0
    removed: int = 0
    audio_files_removed: int = 0
    not_found: List[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _delete_audio(store: BlobStore, entries: Iterable[CacheEntry]) -> int:
    removed = 0
    for entry in entries:
        if not entry.audio_key:
            warn(_LOG, "audio_key_missing", title=entry.title)
            continue
        try:
            if store.delete(entry.audio_key):
                removed += 1
                verbose(_LOG, "audio_deleted", key=entry.audio_key)
        except StorageError as e:
            warn(_LOG, "audio_delete_failed", key=entry.audio_key, error=e.message)
    return removed


def apply_retention_policy(
    index: EpisodeIndex,
    store: BlobStore,
    max_episodes: Optional[int] = None,
    max_age_days: Optional[float] = None,
    delete_audio: bool = True,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> RetentionStats:
    """
    Drop entries beyond the newest max_episodes or older than max_age_days.

    None or 0 disables a limit. Entries without a parseable date are kept
    by the age rule.

    Returns:
        RetentionStats for the pass (what would be removed when dry_run).
    """
    now = now or datetime.now(timezone.utc)
    entries = index.entries()

    to_remove: List[str] = []
    for position, (key, entry) in enumerate(entries):
        if max_episodes and position >= max_episodes:
            to_remove.append(key)
            continue
        processed_at = entry.processed_at
        if max_age_days and processed_at is not None and now - processed_at > timedelta(days=max_age_days):
            to_remove.append(key)

    stats = RetentionStats(
        total_before=len(entries),
        total_after=len(entries) - len(to_remove),
        removed=len(to_remove),
        dry_run=dry_run,
        removed_keys=to_remove,
    )
    info(_LOG, "retention_planned", total=len(entries), remove=len(to_remove), dry_run=dry_run)

    if dry_run or not to_remove:
        return stats

    removed = index.remove(to_remove)
    if delete_audio:
        stats.audio_files_removed = _delete_audio(store, removed.values())
    stats.removed = len(removed)
    stats.total_after = stats.total_before - stats.removed
    info(_LOG, "retention_applied", removed=stats.removed, audio_files_removed=stats.audio_files_removed)
    return stats


def remove_items(
    index: EpisodeIndex,
    store: BlobStore,
    keys: Iterable[str],
    delete_audio: bool = True,
    dry_run: bool = False,
) -> RemovalStats:
    """
    Remove specific items, matching trailing-slash alternates.

    Returns:
        RemovalStats; keys with no entry are listed in not_found.
    """
    wanted = list(keys)
    stats = RemovalStats(requested=len(wanted), dry_run=dry_run)

    present = {key for key, _ in index.entries()}
    found = []
    for key in wanted:
        if key in present or alternate_key(key) in present:
            found.append(key)
        else:
            stats.not_found.append(key)
    stats.found = len(found)

    if dry_run or not found:
        info(_LOG, "removal_planned", requested=stats.requested, found=stats.found, dry_run=dry_run)
        return stats

    removed = index.remove(found)
    stats.removed = len(removed)
    if delete_audio:
        stats.audio_files_removed = _delete_audio(store, removed.values())
    info(_LOG, "items_removed", removed=stats.removed, audio_files_removed=stats.audio_files_removed)
    return stats
