"""
Per-chunk Checkpoints.

Every chunk accepted by the synthesis service has been paid for. Its audio
is written to a scratch area as soon as it arrives, so a crash or timeout
later in the episode does not throw that work away: the next attempt
resumes at the first chunk that has no checkpoint.

Layout (under the checkpoint prefix, per item):

    checkpoints/<slug>/manifest.json
    checkpoints/<slug>/0000.mp3
    checkpoints/<slug>/0001.mp3
    ...

manifest.json:

    {
      "fingerprint": "<sha256 of chunk texts + audio config>",
      "voice": {"language_code": "en-US", "name": "...", "gender": "FEMALE", "pool": "premium-female"},
      "chunks": {"0": {"billed_chars": 693, "sha256": "...", "bytes": 41233}}
    }

The voice is stored so that a resumed episode keeps one narrator. If the
text or audio settings change, the fingerprint no longer matches and the
old scratch data is discarded. Chunk audio is written before its manifest
entry, so the manifest never points at a missing blob unless something
outside the pipeline removed it; that, a hash mismatch or an unreadable
manifest raises CheckpointError.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from podcast_tts.core.errors import CheckpointError, StorageError
from podcast_tts.core.logging import debug, get_logger, info, warn
from podcast_tts.tts.storage import AUDIO_CONTENT_TYPE, JSON_CONTENT_TYPE, BlobStore, hash_bytes
from podcast_tts.tts.voices import VoiceProfile

_LOG = get_logger("podcast-tts.checkpoints")


class ItemCheckpoint:
    """Checkpoint state for one item; create through CheckpointStore.open()."""

    def __init__(self, store: BlobStore, prefix: str, fingerprint: str, manifest: Dict[str, Any]):
        self._store = store
        self._prefix = prefix
        self._fingerprint = fingerprint
        self._manifest = manifest

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def manifest_key(self) -> str:
        return f"{self._prefix}/manifest.json"

    def chunk_key(self, index: int) -> str:
        return f"{self._prefix}/{index:04d}.mp3"

    @property
    def voice(self) -> Optional[VoiceProfile]:
        raw = self._manifest.get("voice")
        return VoiceProfile.from_dict(raw) if raw else None

    @property
    def completed_indices(self) -> List[int]:
        return sorted(int(i) for i in self._manifest.get("chunks", {}))

    @property
    def billed_chars_total(self) -> int:
        return sum(int(rec.get("billed_chars", 0)) for rec in self._manifest.get("chunks", {}).values())

    def has(self, index: int) -> bool:
        return str(index) in self._manifest.get("chunks", {})

    def _write_manifest(self) -> None:
        payload = json.dumps(self._manifest, indent=2, sort_keys=True).encode("utf-8")
        self._store.put(self.manifest_key, payload, JSON_CONTENT_TYPE)

    def bind_voice(self, voice: VoiceProfile) -> None:
        """Record the episode voice before the first chunk is synthesized."""
        self._manifest["voice"] = voice.to_dict()
        self._write_manifest()

    def save(self, index: int, audio: bytes, billed_chars: int) -> None:
        """Persist one chunk's audio, then its manifest entry."""
        self._store.put(self.chunk_key(index), audio, AUDIO_CONTENT_TYPE)
        self._manifest.setdefault("chunks", {})[str(index)] = {
            "billed_chars": int(billed_chars),
            "sha256": hash_bytes(audio),
            "bytes": len(audio),
        }
        self._write_manifest()
        debug(_LOG, "checkpoint_saved", prefix=self._prefix, index=index, bytes=len(audio))

    def load(self, index: int) -> bytes:
        """
        Load and verify checkpointed audio.

        Raises:
            CheckpointError: If the chunk is missing or its hash differs.
        """
        record = self._manifest.get("chunks", {}).get(str(index))
        if record is None:
            raise CheckpointError(f"no checkpoint for chunk {index}", details={"prefix": self._prefix})
        data = self._store.get(self.chunk_key(index))
        if data is None:
            raise CheckpointError(
                f"checkpoint audio for chunk {index} is missing",
                details={"prefix": self._prefix, "index": index},
            )
        if hash_bytes(data) != record.get("sha256"):
            raise CheckpointError(
                f"checkpoint audio for chunk {index} does not match its manifest",
                details={"prefix": self._prefix, "index": index},
            )
        return data

    def discard(self) -> int:
        """Remove all scratch data for this item."""
        removed = self._store.delete_prefix(self._prefix + "/")
        self._manifest = {"fingerprint": self._fingerprint, "chunks": {}}
        debug(_LOG, "checkpoint_discarded", prefix=self._prefix, removed=removed)
        return removed


class CheckpointStore:
    """
    Opens per-item checkpoints under a common prefix.

    Args:
        store: Blob store for scratch data.
        prefix: Key prefix, e.g. "checkpoints".
    """

    def __init__(self, store: BlobStore, prefix: str = "checkpoints"):
        self._store = store
        self._prefix = prefix.strip("/")

    def item_prefix(self, item_slug: str) -> str:
        return f"{self._prefix}/{item_slug}"

    def open(self, item_slug: str, fingerprint: str) -> ItemCheckpoint:
        """
        Open the checkpoint for an item, resuming when the fingerprint matches.

        Raises:
            CheckpointError: If an existing manifest cannot be parsed.
        """
        prefix = self.item_prefix(item_slug)
        manifest_key = f"{prefix}/manifest.json"
        try:
            raw = self._store.get(manifest_key)
        except StorageError as e:
            raise CheckpointError(f"checkpoint manifest unreadable: {e.message}",
                                  details={"prefix": prefix}) from e

        fresh = {"fingerprint": fingerprint, "chunks": {}}
        if raw is None:
            return ItemCheckpoint(self._store, prefix, fingerprint, fresh)

        try:
            manifest = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CheckpointError(f"checkpoint manifest is corrupt: {e}", details={"prefix": prefix}) from e
        if not isinstance(manifest, dict) or not isinstance(manifest.get("chunks", {}), dict):
            raise CheckpointError("checkpoint manifest has an unexpected shape", details={"prefix": prefix})

        checkpoint = ItemCheckpoint(self._store, prefix, fingerprint, manifest)
        if manifest.get("fingerprint") != fingerprint:
            warn(_LOG, "checkpoint_stale", prefix=prefix, chunks=len(manifest.get("chunks", {})))
            checkpoint.discard()
            return ItemCheckpoint(self._store, prefix, fingerprint, fresh)

        if manifest.get("chunks"):
            info(_LOG, "checkpoint_found", prefix=prefix, chunks=len(manifest["chunks"]))
        return checkpoint
