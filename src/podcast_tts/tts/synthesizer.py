"""
Per-chunk Synthesis with Truncation and Bounded Retry.

One TextChunk goes in, audio bytes for it come out. Every call accepted by
the service is billed, so each retry path here is explicitly bounded.

Pre-check:
    If a chunk is above the service hard limit in UTF-8 bytes (possible with
    dense multi-byte scripts), its tail is trimmed in fixed character steps
    until it is at or below the truncation target. This loses text and is
    logged as a warning.

After submission:
    SizeLimitError  -> retry with the first 80% of the text, at most
                       max_shrink_attempts times and never below
                       min_text_chars; then FatalError.
    ServiceError    -> retryable errors back off exponentially
                       (base * 2^(n-1), capped, plus jitter) up to
                       max_service_retries; non-retryable errors and
                       exhausted retries raise FatalError.

Example:
    synth = Synthesizer(GoogleSpeechClient(), AudioConfig())
    outcome = synth.synthesize_chunk(chunk, voice)
    outcome.billed_chars  # characters the service accepted
"""
from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

from podcast_tts.core.config import AudioConfig, SynthesisConfig
from podcast_tts.core.errors import ErrorCode, FatalError, ServiceError, SizeLimitError
from podcast_tts.core.logging import get_logger, verbose, warn
from podcast_tts.core.metrics import metrics
from podcast_tts.tts.chunker import TextChunk
from podcast_tts.tts.client import SpeechClient
from podcast_tts.tts.voices import VoiceProfile, validate_voice
from podcast_tts.utils.text import utf8_len
from podcast_tts.utils.timeit import timeit

_LOG = get_logger("podcast-tts.synthesizer")


@dataclass
class SynthesisOutcome:
    """
    Result of synthesizing one chunk.

    Attributes:
        index: Ordinal of the chunk.
        audio_bytes: Audio returned by the service.
        billed_chars: Characters in the accepted request.
        submitted_text: Text that was finally accepted.
        attempts: Service calls made, including rejected ones.
        truncated: True if the pre-check trimmed the chunk.
        seconds: Wall time spent on this chunk.
    """
    index: int
    audio_bytes: bytes
    billed_chars: int
    submitted_text: str
    attempts: int
    truncated: bool
    seconds: float = 0.0


def truncate_to_byte_limit(text: str, hard_limit_bytes: int, target_bytes: int, step_chars: int) -> str:
    """
    Trim the tail of text when it is above hard_limit_bytes.

    Characters are removed step_chars at a time until the UTF-8 size is at
    most target_bytes. Text already within the hard limit is returned as is.
    """
    if utf8_len(text) <= hard_limit_bytes:
        return text
    trimmed = text
    while trimmed and utf8_len(trimmed) > target_bytes:
        trimmed = trimmed[:-step_chars] if len(trimmed) > step_chars else ""
    return trimmed.rstrip()


class Synthesizer:
    """
    Bounded synthesis of single chunks.

    Args:
        client: SpeechClient used for service calls.
        audio_config: Output settings sent with each call.
        config: Limits and retry bounds.
        sleep: Sleep function, replaced in tests.
        rng: Random source for backoff jitter.
    """

    def __init__(
        self,
        client: SpeechClient,
        audio_config: Optional[AudioConfig] = None,
        config: Optional[SynthesisConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self._client = client
        self._audio_config = audio_config or AudioConfig()
        self._config = config or SynthesisConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def audio_config(self) -> AudioConfig:
        return self._audio_config

    @property
    def config(self) -> SynthesisConfig:
        return self._config

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        cfg = self._config
        delay = min(cfg.backoff_max_s, cfg.backoff_base_s * (2 ** (attempt - 1)))
        if cfg.backoff_jitter_s > 0:
            delay += self._rng.uniform(0, cfg.backoff_jitter_s)
        return delay

    def prepare_text(self, chunk: TextChunk) -> str:
        """Apply the byte-limit pre-check to a chunk."""
        cfg = self._config
        text = truncate_to_byte_limit(
            chunk.text,
            hard_limit_bytes=cfg.hard_limit_bytes,
            target_bytes=cfg.truncate_target_bytes,
            step_chars=cfg.truncate_step_chars,
        )
        if text != chunk.text:
            metrics.record_truncation()
            warn(
                _LOG,
                "chunk_truncated",
                index=chunk.index,
                original_bytes=chunk.byte_length,
                submitted_bytes=utf8_len(text),
                truncated_bytes=chunk.byte_length - utf8_len(text),
            )
        if not text:
            raise FatalError(
                f"chunk {chunk.index} is empty after truncation",
                details={"index": chunk.index, "bytes": chunk.byte_length},
            )
        return text

    def synthesize_chunk(
        self,
        chunk: TextChunk,
        voice: VoiceProfile,
        timeout_s: Optional[float] = None,
    ) -> SynthesisOutcome:
        """
        Synthesize one chunk.

        Args:
            chunk: Chunk to speak.
            voice: Voice for the whole episode.
            timeout_s: Per-call timeout handed to the client.

        Returns:
            SynthesisOutcome for the accepted call.

        Raises:
            FatalError: Bounds exhausted, non-retryable service error, or a
                malformed voice profile.
        """
        validate_voice(voice)
        cfg = self._config
        text = self.prepare_text(chunk)
        truncated = text != chunk.text

        attempts = 0
        shrink_attempts = 0
        service_retries = 0

        with timeit("synthesize_chunk") as t:
            while True:
                attempts += 1
                try:
                    audio = self._client.synthesize(text, voice, self._audio_config, timeout_s)
                except SizeLimitError as e:
                    metrics.record_synthesis_call("size_limit")
                    shrink_attempts += 1
                    new_len = int(len(text) * cfg.shrink_factor)
                    if shrink_attempts > cfg.max_shrink_attempts or new_len < cfg.min_text_chars:
                        raise FatalError(
                            f"chunk {chunk.index} still over the service limit after "
                            f"{shrink_attempts - 1} shrink retries",
                            code=ErrorCode.RETRIES_EXHAUSTED,
                            details={"index": chunk.index, "chars": len(text), "bytes": utf8_len(text)},
                        ) from e
                    metrics.record_shrink_retry()
                    warn(_LOG, "chunk_shrink_retry", index=chunk.index, attempt=shrink_attempts,
                         chars_before=len(text), chars_after=new_len)
                    text = text[:new_len]
                    continue
                except ServiceError as e:
                    metrics.record_synthesis_call("service_error")
                    service_retries += 1
                    if not e.retryable or service_retries > cfg.max_service_retries:
                        raise FatalError(
                            f"synthesis of chunk {chunk.index} failed: {e.message}",
                            code=ErrorCode.RETRIES_EXHAUSTED,
                            details={
                                "index": chunk.index,
                                "retryable": e.retryable,
                                "service_retries": service_retries - 1,
                            },
                        ) from e
                    delay = self.backoff_delay(service_retries)
                    metrics.record_service_retry()
                    warn(_LOG, "service_retry", index=chunk.index, attempt=service_retries,
                         error=e.message, delay_s=round(delay, 3))
                    self._sleep(delay)
                    continue
                break

        billed = len(text)
        metrics.record_synthesis_call("ok", billed_chars=billed)
        seconds = t.timing.seconds if t.timing else 0.0
        verbose(_LOG, "chunk_synthesized", index=chunk.index, chars=billed,
                audio_bytes=len(audio), attempts=attempts, seconds=round(seconds, 3))

        return SynthesisOutcome(
            index=chunk.index,
            audio_bytes=audio,
            billed_chars=billed,
            submitted_text=text,
            attempts=attempts,
            truncated=truncated or text != chunk.text,
            seconds=seconds,
        )
