"""
Blob Storage for Episode Audio, Checkpoints and Documents.

All durable state (finished MP3s, per-chunk checkpoints and the JSON
documents) goes through one small key/value interface so the pipeline runs
unchanged on a local directory or on a Google Cloud Storage bucket.

Interface:
    exists(key) -> bool
    get(key) -> bytes | None
    put(key, data, content_type) -> reference
    delete(key) -> bool
    read(key) -> StoredObject | None            (data + version)
    put_if_version(key, data, content_type, expected_version) -> reference
    list_keys(prefix) -> list of keys
    reference(key) -> path or public URL

put_if_version is the compare-and-swap used by documents.py for
read-modify-write. expected_version=None means "only if absent".

Backends:
    LocalBlobStore  - Files under base_dir. Writes go to a temp file and are
                      renamed into place. Versions are content hashes and
                      the compare-and-swap holds a per-path lock, so it is
                      safe between threads of one process only.
    GCSBlobStore    - google-cloud-storage bucket. Versions are object
                      generations and the compare-and-swap uses
                      if_generation_match, so it is safe across hosts.

Usage:
    from podcast_tts.tts.storage import LocalBlobStore

    store = LocalBlobStore("./storage")
    ref = store.put("audio/my-episode-1a2b3c4d.mp3", mp3_bytes, "audio/mpeg")
"""
from __future__ import annotations

import hashlib
import json
import os
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional

from podcast_tts.core.config import StorageConfig
from podcast_tts.core.errors import StorageError, VersionConflictError
from podcast_tts.core.logging import debug, get_logger, info, verbose
from podcast_tts.tts.concurrency import KeyedLock
from podcast_tts.utils.timeit import timeit

_LOG = get_logger("podcast-tts.storage")

AUDIO_CONTENT_TYPE = "audio/mpeg"
JSON_CONTENT_TYPE = "application/json"
AUDIO_CACHE_CONTROL = "public, max-age=31536000"


# =============================================================================
# Hash Helpers
# =============================================================================

def hash_bytes(data: bytes) -> str:
    """SHA256 of bytes as 64 lowercase hex characters."""
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def hash_dict(data: Dict[str, object]) -> str:
    """SHA256 of a JSON-serialisable dict, independent of key order."""
    payload = json.dumps(data, sort_keys=True, ensure_ascii=True).encode("utf-8")
    return hash_bytes(payload)


# =============================================================================
# Interface
# =============================================================================

@dataclass
class StoredObject:
    """Blob content together with the version it was read at."""
    data: bytes
    version: str


class BlobStore:
    """
    Base class for blob stores.

    Subclasses implement read, put, put_if_version, delete, list_keys and
    reference; exists and get have generic fallbacks.
    """

    name = "base"

    def exists(self, key: str) -> bool:
        return self.read(key) is not None

    def get(self, key: str) -> Optional[bytes]:
        obj = self.read(key)
        return obj.data if obj is not None else None

    def read(self, key: str) -> Optional[StoredObject]:
        raise NotImplementedError

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        raise NotImplementedError

    def put_if_version(
        self,
        key: str,
        data: bytes,
        content_type: str,
        expected_version: Optional[str],
    ) -> str:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def list_keys(self, prefix: str = "") -> List[str]:
        raise NotImplementedError

    def reference(self, key: str) -> str:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> int:
        """Delete every key under prefix; returns the number removed."""
        removed = 0
        for key in self.list_keys(prefix):
            if self.delete(key):
                removed += 1
        return removed


# =============================================================================
# Local Filesystem Backend
# =============================================================================

class LocalBlobStore(BlobStore):
    """
    Blob store rooted at a local directory.

    Keys are relative POSIX paths ("audio/x.mp3"); absolute keys and ".."
    segments are rejected.
    """

    name = "local"

    # Shared by every instance so two stores on one directory still exclude each other
    _path_locks = KeyedLock()

    def __init__(self, base_dir: str):
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path(self, key: str) -> Path:
        pure = PurePosixPath(key)
        if not key or pure.is_absolute() or ".." in pure.parts:
            raise StorageError(f"invalid blob key: {key!r}")
        return self._base_dir.joinpath(*pure.parts)

    def _lock_for(self, path: Path):
        return self._path_locks.hold(str(path.resolve()))

    def _write_atomic(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Unique temp name so concurrent writers never share a temp file
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise StorageError(f"write failed for {path}: {e}") from e

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def read(self, key: str) -> Optional[StoredObject]:
        path = self._path(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"read failed for {key}: {e}") from e
        return StoredObject(data=data, version=hash_bytes(data))

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self._path(key)
        with timeit("storage_write") as t:
            with self._lock_for(path):
                self._write_atomic(path, data)
        verbose(_LOG, "blob_saved", key=key, bytes=len(data),
                seconds=round(t.timing.seconds, 4) if t.timing else None)
        return self.reference(key)

    def put_if_version(
        self,
        key: str,
        data: bytes,
        content_type: str,
        expected_version: Optional[str],
    ) -> str:
        path = self._path(key)
        with self._lock_for(path):
            current = self.read(key)
            current_version = current.version if current is not None else None
            if current_version != expected_version:
                raise VersionConflictError(
                    f"version conflict on {key}",
                    details={"expected": expected_version, "actual": current_version},
                )
            self._write_atomic(path, data)
        debug(_LOG, "blob_cas_saved", key=key, bytes=len(data))
        return self.reference(key)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        with self._lock_for(path):
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise StorageError(f"delete failed for {key}: {e}") from e
        return True

    def list_keys(self, prefix: str = "") -> List[str]:
        root = self._base_dir
        if not root.exists():
            return []
        keys = []
        for p in root.rglob("*"):
            if not p.is_file() or p.name.endswith(".tmp"):
                continue
            key = p.relative_to(root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def reference(self, key: str) -> str:
        return str(self._path(key).resolve())


# =============================================================================
# Google Cloud Storage Backend
# =============================================================================

class GCSBlobStore(BlobStore):
    """
    Blob store on a Google Cloud Storage bucket.

    References are public object URLs. Audio objects get a one-year
    Cache-Control since their keys are never rewritten with new content.

    Args:
        bucket_name: Bucket to use.
        client: Pre-built ``google.cloud.storage.Client`` (tests, custom
            credentials). Created from the environment when omitted.
    """

    name = "gcs"

    def __init__(self, bucket_name: str, client: Optional[Any] = None):
        from google.api_core import exceptions as gexc
        from google.cloud import storage as gcs

        self._gexc = gexc
        self._client = client or gcs.Client()
        self._bucket_name = bucket_name
        self._bucket = self._client.bucket(bucket_name)
        info(_LOG, "gcs_store_ready", bucket=bucket_name)

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    def exists(self, key: str) -> bool:
        return bool(self._bucket.blob(key).exists())

    def read(self, key: str) -> Optional[StoredObject]:
        # The object may be replaced between the metadata and content reads
        for _ in range(3):
            blob = self._bucket.get_blob(key)
            if blob is None:
                return None
            try:
                data = blob.download_as_bytes(if_generation_match=blob.generation)
            except (self._gexc.NotFound, self._gexc.PreconditionFailed):
                continue
            return StoredObject(data=data, version=str(blob.generation))
        raise StorageError(f"object {key} changed during every read attempt")

    def _upload(self, key: str, data: bytes, content_type: str, **kwargs: Any) -> None:
        blob = self._bucket.blob(key)
        if content_type == AUDIO_CONTENT_TYPE:
            blob.cache_control = AUDIO_CACHE_CONTROL
        blob.upload_from_string(data, content_type=content_type, **kwargs)

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        with timeit("storage_write") as t:
            try:
                self._upload(key, data, content_type)
            except self._gexc.GoogleAPIError as e:
                raise StorageError(f"upload failed for {key}: {e}") from e
        verbose(_LOG, "blob_saved", key=key, bytes=len(data),
                seconds=round(t.timing.seconds, 4) if t.timing else None)
        return self.reference(key)

    def put_if_version(
        self,
        key: str,
        data: bytes,
        content_type: str,
        expected_version: Optional[str],
    ) -> str:
        generation = int(expected_version) if expected_version is not None else 0
        try:
            self._upload(key, data, content_type, if_generation_match=generation)
        except self._gexc.PreconditionFailed as e:
            raise VersionConflictError(
                f"version conflict on {key}",
                details={"expected": expected_version},
            ) from e
        except self._gexc.GoogleAPIError as e:
            raise StorageError(f"upload failed for {key}: {e}") from e
        return self.reference(key)

    def delete(self, key: str) -> bool:
        try:
            self._bucket.blob(key).delete()
        except self._gexc.NotFound:
            return False
        except self._gexc.GoogleAPIError as e:
            raise StorageError(f"delete failed for {key}: {e}") from e
        return True

    def list_keys(self, prefix: str = "") -> List[str]:
        return sorted(b.name for b in self._client.list_blobs(self._bucket_name, prefix=prefix))

    def reference(self, key: str) -> str:
        return f"https://storage.googleapis.com/{self._bucket_name}/{key}"


# =============================================================================
# Factory
# =============================================================================

def create_blob_store(config: StorageConfig) -> BlobStore:
    """
    Create the blob store named by config.backend.

    Raises:
        StorageError: If the backend is unknown or gcs has no bucket.
    """
    if config.backend == "local":
        return LocalBlobStore(config.base_dir)
    if config.backend == "gcs":
        if not config.bucket_name:
            raise StorageError("storage.bucket_name is required for the gcs backend")
        return GCSBlobStore(config.bucket_name)
    raise StorageError(f"unknown storage backend: {config.backend}")
