"""
Tests for the retention policy and item removal.
"""
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from podcast_tts.core.errors import StorageError
from podcast_tts.services.episode_index import CacheEntry, EpisodeIndex
from podcast_tts.services.retention import apply_retention_policy, remove_items
from podcast_tts.tts.storage import LocalBlobStore

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _populate(store, ages_days):
    """Commit one entry (with audio) per age; key i is i days old."""
    index = EpisodeIndex(store, "data/processed-articles.json")
    for i, age in enumerate(ages_days):
        audio_key = f"audio/item-{i}.mp3"
        store.put(audio_key, b"mp3", "audio/mpeg")
        index.commit(f"https://example.com/{i}", CacheEntry(
            title=f"Item {i}",
            processed_date=(NOW - timedelta(days=age)).isoformat(),
            audio_ref=store.reference(audio_key),
            audio_key=audio_key,
        ))
    return index


class TestApplyRetentionPolicy:

    def test_max_episodes_keeps_newest(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            index = _populate(store, [1, 2, 3, 4, 5])

            stats = apply_retention_policy(index, store, max_episodes=2, now=NOW)

            assert stats.total_before == 5
            assert stats.removed == 3
            assert stats.total_after == 2
            assert stats.audio_files_removed == 3
            assert sorted(k for k, _ in index.entries()) == ["https://example.com/0", "https://example.com/1"]
            assert store.list_keys("audio/") == ["audio/item-0.mp3", "audio/item-1.mp3"]

    def test_max_age(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            index = _populate(store, [1, 10, 100])

            stats = apply_retention_policy(index, store, max_age_days=30, now=NOW)

            assert stats.removed_keys == ["https://example.com/2"]
            assert len(index) == 2

    def test_dry_run_changes_nothing(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            index = _populate(store, [1, 2, 3])

            stats = apply_retention_policy(index, store, max_episodes=1, dry_run=True, now=NOW)

            assert stats.removed == 2
            assert stats.dry_run is True
            assert len(index) == 3
            assert len(store.list_keys("audio/")) == 3

    def test_no_limits_is_noop(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            index = _populate(store, [1, 2])
            stats = apply_retention_policy(index, store, max_episodes=0, max_age_days=None, now=NOW)
            assert stats.removed == 0
            assert len(index) == 2

    def test_keep_audio(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            index = _populate(store, [1, 2])
            stats = apply_retention_policy(index, store, max_episodes=1, delete_audio=False, now=NOW)
            assert stats.audio_files_removed == 0
            assert len(store.list_keys("audio/")) == 2

    def test_audio_delete_failure_does_not_stop_pass(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            index = _populate(store, [1, 2, 3])
            failing = MagicMock()
            failing.delete.side_effect = StorageError("bucket unavailable")

            stats = apply_retention_policy(index, failing, max_episodes=1, now=NOW)

            assert stats.removed == 2
            assert stats.audio_files_removed == 0
            assert failing.delete.call_count == 2
            assert len(index) == 1


class TestRemoveItems:

    def test_remove_with_alternate_key(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            index = _populate(store, [1, 2])

            stats = remove_items(index, store, ["https://example.com/0/", "https://example.com/9"])

            assert stats.requested == 2
            assert stats.found == 1
            assert stats.removed == 1
            assert stats.audio_files_removed == 1
            assert stats.not_found == ["https://example.com/9"]
            assert index.lookup("https://example.com/0") is None

    def test_dry_run(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            index = _populate(store, [1])
            stats = remove_items(index, store, ["https://example.com/0"], dry_run=True)
            assert stats.found == 1
            assert stats.removed == 0
            assert len(index) == 1
