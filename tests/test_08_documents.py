"""
Tests for JSON documents with optimistic read-modify-write.
"""
import json
import tempfile
from unittest.mock import MagicMock

import pytest

from podcast_tts.core.errors import ErrorCode, StorageError, VersionConflictError
from podcast_tts.tts.documents import JsonDocument
from podcast_tts.tts.storage import LocalBlobStore


class TestRead:

    def test_missing_document_uses_default(self):
        with tempfile.TemporaryDirectory() as tmp:
            doc = JsonDocument(LocalBlobStore(tmp), "data/usage.json", default=lambda: {"history": {}})
            value, version = doc.read_versioned()
            assert value == {"history": {}}
            assert version is None

    def test_invalid_json_raises(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            store.put("data/index.json", b"{not json")
            with pytest.raises(StorageError) as exc_info:
                JsonDocument(store, "data/index.json").read()
            assert exc_info.value.code == ErrorCode.STORAGE_ERROR


class TestUpdate:

    def test_update_writes_and_returns_result(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            doc = JsonDocument(store, "data/counter.json")

            def bump(data):
                data["n"] = data.get("n", 0) + 1
                return data["n"]

            assert doc.update(bump) == 1
            assert doc.update(bump) == 2
            assert json.loads(store.get("data/counter.json")) == {"n": 2}

    def test_concurrent_write_is_not_lost(self):
        """A write landing between read and write forces a re-read and re-apply."""
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            doc = JsonDocument(store, "data/log.json", default=lambda: {"events": []})
            calls = []

            def append(data):
                calls.append(1)
                if len(calls) == 1:
                    store.put("data/log.json", json.dumps({"events": ["other"]}).encode())
                data["events"].append("mine")

            doc.update(append)

            assert len(calls) == 2
            assert doc.read() == {"events": ["other", "mine"]}

    def test_conflicts_exhausted(self):
        store = MagicMock()
        store.read.return_value = None
        store.put_if_version.side_effect = VersionConflictError("conflict")
        doc = JsonDocument(store, "data/index.json", max_attempts=3)

        with pytest.raises(StorageError) as exc_info:
            doc.update(lambda data: data.setdefault("k", 1))

        assert exc_info.value.code == ErrorCode.VERSION_CONFLICT
        assert store.put_if_version.call_count == 3
