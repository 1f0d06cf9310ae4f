"""
PodcastService - Bounded-Chunk Episode Pipeline.

This module provides PodcastService, the single entry point that turns one
article into one episode. The API routes and the CLI both go through it.

Architecture:
    Validate → Keys → Lock → Cache Gate → Chunk → Checkpoint/Voice
             → Synthesize missing chunks → Assemble → Artifact → Index
             → Usage ledger + event log → Discard checkpoint

Cost model:
    Every accepted synthesis call is billed. The pipeline therefore:
        - never synthesizes an item that already has an index entry or an
          artifact (cache gate, zero calls)
        - checkpoints every chunk as soon as it is paid for, so a retry
          after a crash or timeout only pays for the missing chunks
        - records usage from the checkpoint manifest, i.e. the characters
          the service actually accepted

Ordering:
    checkpoint chunks → assemble → put artifact → commit index → usage.
    A failure before the commit leaves the index untouched and keeps the
    checkpoints. Failures after the commit (usage, event log, checkpoint
    cleanup) are logged and do not fail the request. When the artifact was
    written but the commit was lost, the next request repairs the index
    entry and records the usage left in the checkpoint.

Error Handling:
    - InputError: Bad request data (raised before any lock or storage access)
    - FatalError: Synthesis bounds exhausted, bad voice, corrupt checkpoint
    - PipelineTimeoutError: Whole-invocation deadline exceeded
    - StorageError: Artifact or index write failed
    Anything else is wrapped in FatalError(INTERNAL_ERROR).

Example:
    >>> from podcast_tts.core.config import load_settings
    >>> from podcast_tts.services.podcast_service import EpisodeRequest, PodcastService
    >>>
    >>> service = PodcastService.from_settings(load_settings())
    >>> result = service.create_episode(
    ...     EpisodeRequest(text=article_text, title="My Article", source="https://example.com/a"),
    ...     request_id="req-123",
    ... )
    >>> result.cache_status
    'miss'
"""
from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from podcast_tts.core.config import ServiceConfig, Settings
from podcast_tts.core.errors import ErrorCode, FatalError, PipelineTimeoutError, PodcastError
from podcast_tts.core.logging import debug, fail, get_logger, info, success, verbose, warn
from podcast_tts.core.metrics import metrics
from podcast_tts.services.episode_index import CacheEntry, EpisodeIndex
from podcast_tts.services.usage import UsageStats, UsageTracker
from podcast_tts.services.validators import (
    validate_description,
    validate_source,
    validate_text,
    validate_title,
)
from podcast_tts.tts.assembler import AudioChunk, assemble_audio
from podcast_tts.tts.checkpoints import CheckpointStore, ItemCheckpoint
from podcast_tts.tts.chunker import ChunkResult, chunk_text
from podcast_tts.tts.client import GoogleSpeechClient, SpeechClient
from podcast_tts.tts.concurrency import KeyedLock, LockTimeout
from podcast_tts.tts.storage import AUDIO_CONTENT_TYPE, BlobStore, create_blob_store, hash_dict, hash_text
from podcast_tts.tts.synthesizer import Synthesizer
from podcast_tts.tts.voices import DEFAULT_POOLS, VoiceProfile, VoiceSelector
from podcast_tts.utils.text import estimate_audio_duration, slugify, text_preview
from podcast_tts.utils.timeit import timeit

_LOG = get_logger("podcast-tts.service")

# Characters of the source hash used to keep artifact keys unique per item
KEY_HASH_CHARS = 8


# =============================================================================
# Request/Response Dataclasses
# =============================================================================

@dataclass
class EpisodeRequest:
    """
    Request to turn one article into an episode.

    Attributes:
        text: Article text (required).
        title: Episode title (required, also names the artifact).
        source: Canonical URL or id of the article. Becomes the index key;
            the title slug is used when absent.
        description: Optional summary stored with the index entry.
    """
    text: str
    title: str
    source: Optional[str] = None
    description: Optional[str] = None


@dataclass
class EpisodeResult:
    """
    Result of create_episode.

    Attributes:
        item_key: Index key of the item.
        artifact_key: Blob key of the episode audio.
        audio_ref: Path or public URL of the episode audio.
        title: Episode title.
        cache_status: "index" or "artifact" for cache gate hits, "miss" when
            the episode was produced by this call.
        chunk_count: Chunks in the episode (0 on cache hits).
        resumed_chunks: Chunks taken from checkpoints instead of the service.
        synthesis_calls: Service calls made by this invocation.
        billed_chars: Characters recorded in the usage ledger.
        audio_bytes: Size of the assembled audio (0 on cache hits).
        voice: Voice used, when the episode was produced by this call.
        estimated_duration_s: Rough narration length.
        total_seconds: Wall time of the invocation.
        request_id: Request ID for tracing.
        usage: Ledger stats after recording, when recording succeeded.
        timings: Per-stage timing breakdown.
    """
    item_key: str
    artifact_key: str
    audio_ref: str
    title: str
    cache_status: str
    chunk_count: int = 0
    resumed_chunks: int = 0
    synthesis_calls: int = 0
    billed_chars: int = 0
    audio_bytes: int = 0
    voice: Optional[VoiceProfile] = None
    estimated_duration_s: int = 0
    total_seconds: float = 0.0
    request_id: str = "-"
    usage: Optional[UsageStats] = None
    timings: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "item_key": self.item_key,
            "artifact_key": self.artifact_key,
            "audio_ref": self.audio_ref,
            "title": self.title,
            "cache_status": self.cache_status,
            "chunk_count": self.chunk_count,
            "resumed_chunks": self.resumed_chunks,
            "synthesis_calls": self.synthesis_calls,
            "billed_chars": self.billed_chars,
            "audio_bytes": self.audio_bytes,
            "voice": self.voice.to_dict() if self.voice else None,
            "estimated_duration_s": self.estimated_duration_s,
            "total_seconds": round(self.total_seconds, 3),
            "request_id": self.request_id,
            "usage": self.usage.to_dict() if self.usage else None,
            "timings": {k: round(v, 4) for k, v in self.timings.items()},
        }


# =============================================================================
# Key Derivation
# =============================================================================

def derive_item_key(title: str, source: Optional[str]) -> str:
    """Index key: the source when given, else the title slug."""
    return source if source else slugify(title)


def derive_artifact_key(audio_prefix: str, title: str, item_key: str) -> str:
    """Deterministic artifact key: <prefix>/<title-slug>-<hash8>.mp3."""
    digest = hash_text(item_key)[:KEY_HASH_CHARS]
    stem = f"{slugify(title)}-{digest}.mp3"
    return f"{audio_prefix}/{stem}" if audio_prefix else stem


def _artifact_stem(artifact_key: str) -> str:
    name = artifact_key.rsplit("/", 1)[-1]
    return name[:-4] if name.endswith(".mp3") else name


# =============================================================================
# Main Service Class
# =============================================================================

class PodcastService:
    """
    Episode pipeline with cache gate, checkpoints and usage tracking.

    Collaborators are injected so tests can run the whole pipeline against
    a temp directory and a fake speech client. from_settings() wires the
    production defaults.

    Args:
        synthesizer: Bounded per-chunk synthesis.
        store: Blob store for artifacts.
        index: Episode index (cache gate).
        usage: Usage ledger and event log.
        voices: Voice selector.
        checkpoints: Per-chunk checkpoint store; defaults to "checkpoints"
            under the same blob store.
        locks: Per-artifact-key locks; a private one by default.
        config: Validated service config.
        clock: Wall clock for index timestamps.
        monotonic: Monotonic clock for the pipeline deadline.
    """

    def __init__(
        self,
        synthesizer: Synthesizer,
        store: BlobStore,
        index: EpisodeIndex,
        usage: UsageTracker,
        voices: VoiceSelector,
        checkpoints: Optional[CheckpointStore] = None,
        locks: Optional[KeyedLock] = None,
        config: Optional[ServiceConfig] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._config = config or ServiceConfig()
        self._synth = synthesizer
        self._store = store
        self._index = index
        self._usage = usage
        self._voices = voices
        self._checkpoints = checkpoints or CheckpointStore(store, self._config.storage.checkpoint_prefix)
        self._locks = locks or KeyedLock()
        self._clock = clock
        self._monotonic = monotonic
        self._text_preview_chars = self._config.logging.text_preview_chars

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[SpeechClient] = None) -> "PodcastService":
        """
        Build the service from settings.

        Args:
            settings: Raw settings; validated here.
            client: Speech client; GoogleSpeechClient when omitted.

        Raises:
            ConfigValidationError: If settings are invalid.
        """
        config = ServiceConfig.from_settings(settings)
        store = create_blob_store(config.storage)
        rng = random.Random(config.voices.seed) if config.voices.seed is not None else random.Random()
        voices = VoiceSelector.from_names(
            config.voices.pools or DEFAULT_POOLS,
            language_code=config.voices.language_code,
            rng=rng,
        )
        info(_LOG, "service_init", storage=config.storage.backend,
             pools=",".join(voices.pool_names), seeded=config.voices.seed is not None)
        return cls(
            synthesizer=Synthesizer(client or GoogleSpeechClient(), config.audio, config.synthesis),
            store=store,
            index=EpisodeIndex(store, config.storage.index_key, config.storage.document_max_attempts),
            usage=UsageTracker(
                store,
                ledger_key=config.storage.ledger_key,
                event_log_key=config.storage.event_log_key,
                config=config.usage,
                max_attempts=config.storage.document_max_attempts,
            ),
            voices=voices,
            checkpoints=CheckpointStore(store, config.storage.checkpoint_prefix),
            config=config,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def store(self) -> BlobStore:
        return self._store

    @property
    def index(self) -> EpisodeIndex:
        return self._index

    @property
    def usage(self) -> UsageTracker:
        return self._usage

    @property
    def voices(self) -> VoiceSelector:
        return self._voices

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def artifact_key(self, title: str, item_key: str) -> str:
        return derive_artifact_key(self._config.storage.audio_prefix, title, item_key)

    def plan_chunks(self, text: str) -> ChunkResult:
        """Chunk text with the configured sizing (no service calls)."""
        cfg = self._config.chunking
        return chunk_text(text, target_size=cfg.target_size,
                          safety_factor=cfg.safety_factor, max_bytes=cfg.max_bytes)

    def _fingerprint(self, chunks: ChunkResult) -> str:
        return hash_dict({"chunks": chunks.texts, "audio": self._synth.audio_config.to_dict()})

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def _entry_for(self, title: str, description: Optional[str], artifact_key: str) -> CacheEntry:
        return CacheEntry(
            title=title,
            processed_date=self._now_iso(),
            audio_ref=self._store.reference(artifact_key),
            description=description,
            audio_key=artifact_key,
        )

    def _episode_voice(self, checkpoint: ItemCheckpoint) -> VoiceProfile:
        voice = checkpoint.voice
        if voice is not None:
            verbose(_LOG, "voice_resumed", voice=voice.name)
            return voice
        voice = self._voices.select()
        checkpoint.bind_voice(voice)
        info(_LOG, "voice_selected", voice=voice.name, pool=voice.pool)
        return voice

    def _after_commit(
        self,
        request_id: str,
        item_key: str,
        title: str,
        billed_chars: int,
        voice: Optional[VoiceProfile],
        chunk_count: int,
        checkpoint: ItemCheckpoint,
    ) -> Optional[UsageStats]:
        """Usage, event log and checkpoint cleanup; none of these fail the request."""
        stats: Optional[UsageStats] = None
        try:
            stats = self._usage.record_usage(None, billed_chars)
        except (PodcastError, ValueError) as e:
            warn(_LOG, "usage_record_failed", item_key=item_key, chars=billed_chars, error=str(e))

        try:
            self._usage.log_processing_event({
                "requestId": request_id,
                "itemKey": item_key,
                "title": title,
                "charCount": billed_chars,
                "chunkCount": chunk_count,
                "voice": voice.name if voice else None,
                "voicePool": voice.pool if voice else None,
            })
        except PodcastError as e:
            warn(_LOG, "event_log_failed", item_key=item_key, error=e.message)

        try:
            checkpoint.discard()
        except PodcastError as e:
            warn(_LOG, "checkpoint_cleanup_failed", prefix=checkpoint.prefix, error=e.message)
        return stats

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _cache_gate(
        self,
        item_key: str,
        artifact_key: str,
        title: str,
        description: Optional[str],
    ) -> Optional[Tuple[str, CacheEntry]]:
        """Return (cache_status, entry) when the item needs no synthesis."""
        entry = self._index.lookup(item_key)
        if entry is not None:
            metrics.record_cache_gate("index")
            info(_LOG, "cache_hit", source="index", item_key=item_key)
            return "index", entry

        if self._store.exists(artifact_key):
            # Artifact written but the index commit was lost; repair it
            entry = self._entry_for(title, description, artifact_key)
            self._index.commit(item_key, entry)
            metrics.record_cache_gate("artifact")
            warn(_LOG, "index_repaired", item_key=item_key, artifact_key=artifact_key)
            return "artifact", entry

        metrics.record_cache_gate("miss")
        return None

    def _settle_checkpoint(
        self,
        text: str,
        title: str,
        item_key: str,
        artifact_key: str,
        request_id: str,
    ) -> Tuple[int, Optional[UsageStats]]:
        """
        Record the usage of a run that wrote its artifact but lost the index
        commit, then drop its checkpoint.

        Returns:
            (billed_chars, usage stats) of the settled checkpoint; (0, None)
            when there was nothing left behind.
        """
        plan = self.plan_chunks(text)
        try:
            checkpoint = self._checkpoints.open(_artifact_stem(artifact_key), self._fingerprint(plan))
        except PodcastError as e:
            warn(_LOG, "checkpoint_settle_failed", item_key=item_key, error=e.message)
            return 0, None
        if not checkpoint.completed_indices:
            return 0, None

        billed = checkpoint.billed_chars_total
        info(_LOG, "checkpoint_settled", item_key=item_key,
             chunks=len(checkpoint.completed_indices), billed_chars=billed)
        stats = self._after_commit(request_id, item_key, title, billed, checkpoint.voice,
                                   len(plan.chunks), checkpoint)
        return billed, stats

    def _produce(
        self,
        text: str,
        title: str,
        description: Optional[str],
        item_key: str,
        artifact_key: str,
        deadline: float,
        request_id: str,
        timings: Dict[str, float],
    ) -> EpisodeResult:
        with timeit("chunk") as t_chunk:
            plan = self.plan_chunks(text)
        if t_chunk.timing:
            timings["chunk"] = t_chunk.timing.seconds
        chunks = plan.chunks
        verbose(_LOG, "stage", event="chunk", chunks=len(chunks), safe_size=plan.safe_size,
                seconds=round(timings.get("chunk", 0.0), 4))

        checkpoint = self._checkpoints.open(_artifact_stem(artifact_key), self._fingerprint(plan))
        voice = self._episode_voice(checkpoint)

        resumed = sum(1 for c in chunks if checkpoint.has(c.index))
        if resumed:
            metrics.record_chunks_resumed(resumed)
            info(_LOG, "resuming", item_key=item_key, resumed=resumed, total=len(chunks))

        calls = 0
        with timeit("synth") as t_synth:
            for chunk in chunks:
                if checkpoint.has(chunk.index):
                    continue
                remaining = deadline - self._monotonic()
                if remaining <= 0:
                    raise PipelineTimeoutError(
                        f"pipeline deadline of {self._config.pipeline.timeout_s}s exceeded "
                        f"before chunk {chunk.index}",
                        details={
                            "item_key": item_key,
                            "completed_chunks": len(checkpoint.completed_indices),
                            "total_chunks": len(chunks),
                        },
                    )
                outcome = self._synth.synthesize_chunk(chunk, voice, timeout_s=remaining)
                calls += outcome.attempts
                checkpoint.save(chunk.index, outcome.audio_bytes, outcome.billed_chars)
        if t_synth.timing:
            timings["synth"] = t_synth.timing.seconds

        with timeit("assemble") as t_asm:
            audio = assemble_audio([AudioChunk(index=c.index, audio_bytes=checkpoint.load(c.index))
                                    for c in chunks])
        if t_asm.timing:
            timings["assemble"] = t_asm.timing.seconds

        with timeit("store") as t_store:
            self._store.put(artifact_key, audio, AUDIO_CONTENT_TYPE)
            entry = self._entry_for(title, description, artifact_key)
            self._index.commit(item_key, entry)
        if t_store.timing:
            timings["store"] = t_store.timing.seconds

        billed = checkpoint.billed_chars_total
        stats = self._after_commit(request_id, item_key, title, billed, voice, len(chunks), checkpoint)

        return EpisodeResult(
            item_key=item_key,
            artifact_key=artifact_key,
            audio_ref=entry.audio_ref,
            title=title,
            cache_status="miss",
            chunk_count=len(chunks),
            resumed_chunks=resumed,
            synthesis_calls=calls,
            billed_chars=billed,
            audio_bytes=len(audio),
            voice=voice,
            estimated_duration_s=estimate_audio_duration(text),
            request_id=request_id,
            usage=stats,
            timings=timings,
        )

    # =========================================================================
    # Public API: create_episode()
    # =========================================================================

    def create_episode(self, request: EpisodeRequest, request_id: str = "-") -> EpisodeResult:
        """
        Produce (or find) the episode for one article.

        Pipeline:
            1. Validate text, title, source and description
            2. Derive item key and artifact key
            3. Hold the per-artifact-key lock
            4. Cache gate: index entry or existing artifact → return
            5. Chunk, open checkpoint, pick or resume the voice
            6. Synthesize missing chunks in order, checkpointing each
            7. Assemble, write artifact, commit index
            8. Record usage and the processing event, discard checkpoint

        Args:
            request: EpisodeRequest with text and metadata.
            request_id: Unique ID for request tracing.

        Returns:
            EpisodeResult.

        Raises:
            InputError: If the request is invalid.
            FatalError: If the episode could not be produced; the index is
                unchanged and checkpoints are kept.
            StorageError: If the artifact or index write failed.
        """
        text = validate_text(request.text, self._config.pipeline.max_text_length)
        title = validate_title(request.title)
        source = validate_source(request.source)
        description = validate_description(request.description)

        item_key = derive_item_key(title, source)
        artifact_key = self.artifact_key(title, item_key)

        info(_LOG, "request", item_key=item_key, chars=len(text),
             text_preview=text_preview(text, self._text_preview_chars))
        debug(_LOG, "resolved", item_key=item_key, artifact_key=artifact_key)

        timeout_s = self._config.pipeline.timeout_s
        deadline = self._monotonic() + timeout_s
        timings: Dict[str, float] = {}
        cache_status = "miss"

        try:
            with timeit("request_total") as total_t:
                try:
                    with self._locks.hold(artifact_key, timeout=timeout_s):
                        with timeit("cache_gate") as t_gate:
                            hit = self._cache_gate(item_key, artifact_key, title, description)
                        if t_gate.timing:
                            timings["cache_gate"] = t_gate.timing.seconds

                        if hit is not None:
                            cache_status, entry = hit
                            result = EpisodeResult(
                                item_key=item_key,
                                artifact_key=entry.audio_key or artifact_key,
                                audio_ref=entry.audio_ref,
                                title=entry.title or title,
                                cache_status=cache_status,
                                estimated_duration_s=estimate_audio_duration(text),
                                request_id=request_id,
                                timings=timings,
                            )
                            if cache_status == "artifact":
                                result.billed_chars, result.usage = self._settle_checkpoint(
                                    text, title, item_key, artifact_key, request_id)
                        else:
                            result = self._produce(text, title, description, item_key,
                                                   artifact_key, deadline, request_id, timings)
                except LockTimeout as e:
                    raise PipelineTimeoutError(
                        f"timed out after {timeout_s}s waiting for another request on the same item",
                        details={"item_key": item_key, "timeout_s": timeout_s},
                    ) from e

            total_s = total_t.timing.seconds if total_t.timing else 0.0
            result.total_seconds = total_s
            success(_LOG, "done", item_key=item_key, cache=result.cache_status,
                    chunks=result.chunk_count, billed_chars=result.billed_chars,
                    bytes=result.audio_bytes, seconds=round(total_s, 3))
            metrics.record_episode("success", duration=total_s, cache_status=result.cache_status)
            return result

        except PodcastError as e:
            fail(_LOG, "request_failed", item_key=item_key, code=e.code, error=e.message)
            metrics.record_episode("error")
            raise
        except Exception as e:
            fail(_LOG, "request_failed", item_key=item_key, error=str(e), error_type=type(e).__name__)
            metrics.record_episode("error")
            raise FatalError(
                f"Unexpected error: {str(e)}",
                code=ErrorCode.INTERNAL_ERROR,
                details={"error_type": type(e).__name__},
            ) from e

    # =========================================================================
    # Queries
    # =========================================================================

    def list_episodes(self, limit: Optional[int] = None) -> List[Tuple[str, CacheEntry]]:
        """Index entries, newest first."""
        items = self._index.entries()
        return items[:limit] if limit is not None else items

    def usage_stats(self, month: Optional[str] = None) -> UsageStats:
        return self._usage.current_month_stats(month)

    def get_health_info(self) -> Dict[str, Any]:
        """Static service status for /health."""
        return {
            "ok": True,
            "storage": self._config.storage.backend,
            "audio_encoding": self._synth.audio_config.encoding,
            "language_code": self._config.voices.language_code,
            "voice_pools": {name: len(self._voices.voices(name)) for name in self._voices.pool_names},
            "chunking": {
                "target_size": self._config.chunking.target_size,
                "safety_factor": self._config.chunking.safety_factor,
                "max_bytes": self._config.chunking.max_bytes,
            },
            "pipeline_timeout_s": self._config.pipeline.timeout_s,
        }


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[PodcastService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> PodcastService:
    """
    Get or create the global PodcastService instance.

    Thread-safe lazy singleton. The service is created on first call
    and reused for subsequent calls.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = PodcastService.from_settings(settings)
    return _service


def reset_service() -> None:
    """
    Reset the global service instance.

    Used primarily for testing to ensure clean state between tests.
    """
    global _service
    with _service_lock:
        _service = None
