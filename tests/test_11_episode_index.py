"""
Tests for the episode index document.
"""
import tempfile

from podcast_tts.services.episode_index import CacheEntry, EpisodeIndex, alternate_key, parse_timestamp
from podcast_tts.tts.storage import LocalBlobStore

INDEX_KEY = "data/processed-articles.json"


def _entry(title, date, key=None):
    return CacheEntry(title=title, processed_date=date, audio_ref=f"/ref/{title}.mp3", audio_key=key)


class TestHelpers:

    def test_alternate_key(self):
        assert alternate_key("https://example.com/a/") == "https://example.com/a"
        assert alternate_key("https://example.com/a") == "https://example.com/a/"

    def test_parse_timestamp(self):
        assert parse_timestamp("2025-01-14T09:30:00Z").tzinfo is not None
        assert parse_timestamp("2025-01-14T09:30:00").utcoffset().total_seconds() == 0
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None

    def test_entry_dict_shape(self):
        entry = _entry("T", "2025-01-14T09:30:00+00:00", key="audio/t.mp3")
        data = entry.to_dict()
        assert data["audioRef"] == "/ref/T.mp3"
        assert data["audioKey"] == "audio/t.mp3"
        assert CacheEntry.from_dict(data) == entry
        assert "audioKey" not in _entry("U", "").to_dict()


class TestEpisodeIndex:

    def test_commit_and_lookup(self):
        with tempfile.TemporaryDirectory() as tmp:
            index = EpisodeIndex(LocalBlobStore(tmp), INDEX_KEY)
            assert index.lookup("https://example.com/a") is None

            index.commit("https://example.com/a", _entry("A", "2025-01-14T09:30:00+00:00"))

            assert index.lookup("https://example.com/a").title == "A"
            assert len(index) == 1

    def test_lookup_matches_trailing_slash_alternate(self):
        with tempfile.TemporaryDirectory() as tmp:
            index = EpisodeIndex(LocalBlobStore(tmp), INDEX_KEY)
            index.commit("https://example.com/a/", _entry("A", "2025-01-14T09:30:00+00:00"))
            assert index.lookup("https://example.com/a").title == "A"

    def test_entries_newest_first_undated_last(self):
        with tempfile.TemporaryDirectory() as tmp:
            index = EpisodeIndex(LocalBlobStore(tmp), INDEX_KEY)
            index.commit("old", _entry("old", "2024-06-01T00:00:00+00:00"))
            index.commit("undated", _entry("undated", ""))
            index.commit("new", _entry("new", "2025-01-01T00:00:00+00:00"))

            assert [k for k, _ in index.entries()] == ["new", "old", "undated"]

    def test_remove_returns_stored_keys(self):
        with tempfile.TemporaryDirectory() as tmp:
            index = EpisodeIndex(LocalBlobStore(tmp), INDEX_KEY)
            index.commit("https://example.com/a/", _entry("A", "2025-01-01T00:00:00+00:00"))
            index.commit("https://example.com/b", _entry("B", "2025-01-02T00:00:00+00:00"))

            removed = index.remove(["https://example.com/a", "https://example.com/missing"])

            assert list(removed) == ["https://example.com/a/"]
            assert len(index) == 1
            assert index.lookup("https://example.com/b") is not None
