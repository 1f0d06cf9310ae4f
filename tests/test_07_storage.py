"""
Tests for blob storage.

Tests cover:
- LocalBlobStore put/get/exists/delete/list_keys/delete_prefix
- Conditional writes (put_if_version) and VersionConflictError
- Key validation
- create_blob_store() factory
- GCSBlobStore with a mocked client (skipped without google-cloud-storage)
"""
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from podcast_tts.core.config import StorageConfig
from podcast_tts.core.errors import StorageError, VersionConflictError
from podcast_tts.tts.storage import (
    LocalBlobStore,
    create_blob_store,
    hash_bytes,
    hash_dict,
    hash_text,
)


class TestHashHelpers:

    def test_hash_bytes_hex(self):
        h = hash_bytes(b"abc")
        assert len(h) == 64
        assert h == hash_text("abc")

    def test_hash_dict_key_order_independent(self):
        assert hash_dict({"a": 1, "b": [1, 2]}) == hash_dict({"b": [1, 2], "a": 1})
        assert hash_dict({"a": 1}) != hash_dict({"a": 2})


class TestLocalBlobStore:

    def test_put_get_exists(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            ref = store.put("audio/ep.mp3", b"mp3", "audio/mpeg")

            assert store.exists("audio/ep.mp3")
            assert store.get("audio/ep.mp3") == b"mp3"
            assert Path(ref).is_file()
            assert store.get("audio/missing.mp3") is None
            assert not store.exists("audio/missing.mp3")

    def test_read_version_is_content_hash(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            store.put("a.json", b"{}")
            obj = store.read("a.json")
            assert obj.data == b"{}"
            assert obj.version == hash_bytes(b"{}")

    def test_delete(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            store.put("x.bin", b"1")
            assert store.delete("x.bin") is True
            assert store.delete("x.bin") is False

    def test_path_locks_released_after_writes(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            for i in range(200):
                key = f"checkpoints/x/{i:04d}.mp3"
                store.put(key, b"audio")
                store.delete(key)
            store.put_if_version("doc.json", b"{}", "application/json", None)

            assert LocalBlobStore._path_locks.active_keys() == 0

    def test_list_keys_and_delete_prefix(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            store.put("checkpoints/a/0000.mp3", b"0")
            store.put("checkpoints/a/manifest.json", b"{}")
            store.put("checkpoints/ab/0000.mp3", b"0")
            store.put("audio/a.mp3", b"a")

            assert store.list_keys("checkpoints/a/") == [
                "checkpoints/a/0000.mp3",
                "checkpoints/a/manifest.json",
            ]
            assert store.delete_prefix("checkpoints/a/") == 2
            assert store.list_keys("checkpoints/") == ["checkpoints/ab/0000.mp3"]

    def test_list_keys_missing_root(self):
        assert LocalBlobStore("/nonexistent/podcast-tts-store").list_keys() == []

    @pytest.mark.parametrize("key", ["", "/etc/passwd", "../escape", "a/../../b"])
    def test_invalid_keys(self, key):
        with tempfile.TemporaryDirectory() as tmp:
            with pytest.raises(StorageError):
                LocalBlobStore(tmp).put(key, b"x")


class TestConditionalWrites:

    def test_create_only_if_absent(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            store.put_if_version("doc.json", b"1", "application/json", None)
            with pytest.raises(VersionConflictError):
                store.put_if_version("doc.json", b"2", "application/json", None)
            assert store.get("doc.json") == b"1"

    def test_stale_version_conflicts(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            store.put("doc.json", b"v1")
            version = store.read("doc.json").version
            store.put("doc.json", b"v2")

            with pytest.raises(VersionConflictError) as exc_info:
                store.put_if_version("doc.json", b"v3", "application/json", version)
            assert exc_info.value.code == "VERSION_CONFLICT"
            assert store.get("doc.json") == b"v2"

    def test_matching_version_writes(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalBlobStore(tmp)
            store.put("doc.json", b"v1")
            version = store.read("doc.json").version
            store.put_if_version("doc.json", b"v2", "application/json", version)
            assert store.get("doc.json") == b"v2"


class TestFactory:

    def test_local_backend(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = create_blob_store(StorageConfig(base_dir=tmp))
            assert isinstance(store, LocalBlobStore)
            assert store.base_dir == Path(tmp)

    def test_unknown_backend(self):
        with pytest.raises(StorageError):
            create_blob_store(StorageConfig(backend="s3"))

    def test_gcs_without_bucket(self):
        with pytest.raises(StorageError):
            create_blob_store(StorageConfig(backend="gcs"))


class TestGCSBlobStore:
    """GCSBlobStore against a mocked storage client."""

    @pytest.fixture
    def gcs(self):
        pytest.importorskip("google.cloud.storage")
        from podcast_tts.tts.storage import GCSBlobStore

        client = MagicMock()
        bucket = client.bucket.return_value
        return GCSBlobStore("podcast-bucket", client=client), client, bucket

    def test_reference_is_public_url(self, gcs):
        store, _, _ = gcs
        assert store.reference("audio/a.mp3") == "https://storage.googleapis.com/podcast-bucket/audio/a.mp3"

    def test_audio_upload_sets_cache_control(self, gcs):
        store, _, bucket = gcs
        store.put("audio/a.mp3", b"mp3", "audio/mpeg")
        blob = bucket.blob.return_value
        assert blob.cache_control == "public, max-age=31536000"
        blob.upload_from_string.assert_called_once_with(b"mp3", content_type="audio/mpeg")

    def test_read_missing(self, gcs):
        store, _, bucket = gcs
        bucket.get_blob.return_value = None
        assert store.read("data/x.json") is None

    def test_read_returns_generation(self, gcs):
        store, _, bucket = gcs
        blob = MagicMock(generation=17)
        blob.download_as_bytes.return_value = b"{}"
        bucket.get_blob.return_value = blob

        obj = store.read("data/x.json")
        assert obj.data == b"{}"
        assert obj.version == "17"
        blob.download_as_bytes.assert_called_once_with(if_generation_match=17)

    def test_conditional_write_conflict(self, gcs):
        from google.api_core import exceptions as gexc

        store, _, bucket = gcs
        bucket.blob.return_value.upload_from_string.side_effect = gexc.PreconditionFailed("changed")
        with pytest.raises(VersionConflictError):
            store.put_if_version("data/x.json", b"{}", "application/json", "17")

    def test_create_only_uses_generation_zero(self, gcs):
        store, _, bucket = gcs
        store.put_if_version("data/x.json", b"{}", "application/json", None)
        kwargs = bucket.blob.return_value.upload_from_string.call_args.kwargs
        assert kwargs["if_generation_match"] == 0

    def test_delete_missing(self, gcs):
        from google.api_core import exceptions as gexc

        store, _, bucket = gcs
        bucket.blob.return_value.delete.side_effect = gexc.NotFound("gone")
        assert store.delete("audio/a.mp3") is False
