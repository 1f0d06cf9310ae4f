"""
Synthesis Service Adapter (Google Cloud Text-to-Speech).

The Synthesizer talks to the service through the small SpeechClient
protocol so that retries, truncation and checkpointing can be tested with
a fake. GoogleSpeechClient is the production implementation; it converts
google-api-core exceptions into the pipeline's error taxonomy:

    InvalidArgument mentioning the byte limit  -> SizeLimitError
    ResourceExhausted, ServiceUnavailable,
    InternalServerError, DeadlineExceeded,
    RetryError,
    ConnectionError                            -> ServiceError(retryable=True)
    Any other GoogleAPIError                   -> ServiceError(retryable=False)

Credentials are resolved by the Google client library itself
(GOOGLE_APPLICATION_CREDENTIALS or the runtime service account). The
underlying TextToSpeechClient is created on first use.
"""
from __future__ import annotations

import re
import threading
from typing import Any, Optional, Protocol

from google.api_core import exceptions as gexc
from google.cloud import texttospeech

from podcast_tts.core.config import AudioConfig
from podcast_tts.core.errors import ServiceError, SizeLimitError
from podcast_tts.core.logging import debug, get_logger
from podcast_tts.tts.voices import VoiceProfile

_LOG = get_logger("podcast-tts.client")

# Wording used by the service when the input exceeds its limit
_SIZE_LIMIT_RE = re.compile(r"longer than the limit|exceeds? the (?:byte )?limit|5000 bytes", re.IGNORECASE)

_RETRYABLE = (
    gexc.ResourceExhausted,
    gexc.ServiceUnavailable,
    gexc.InternalServerError,
    gexc.DeadlineExceeded,
    gexc.RetryError,
)


class SpeechClient(Protocol):
    """Anything that turns one text into audio bytes."""

    def synthesize(
        self,
        text: str,
        voice: VoiceProfile,
        audio_config: AudioConfig,
        timeout_s: Optional[float] = None,
    ) -> bytes:
        ...


def is_size_limit_message(message: str) -> bool:
    return bool(_SIZE_LIMIT_RE.search(message or ""))


def classify_service_error(exc: BaseException) -> Exception:
    """
    Map an exception raised by the Google client to SizeLimitError or
    ServiceError. The original exception should be chained by the caller.
    """
    message = str(exc)
    status = getattr(exc, "code", None)
    status_code = int(status) if isinstance(status, int) else None

    if isinstance(exc, gexc.InvalidArgument) and is_size_limit_message(message):
        return SizeLimitError(message, details={"status_code": status_code})
    if isinstance(exc, _RETRYABLE) or isinstance(exc, ConnectionError):
        return ServiceError(message, retryable=True, status_code=status_code,
                            details={"error_type": type(exc).__name__})
    return ServiceError(message, retryable=False, status_code=status_code,
                        details={"error_type": type(exc).__name__})


class GoogleSpeechClient:
    """
    SpeechClient backed by google-cloud-texttospeech.

    Args:
        client: Pre-built TextToSpeechClient (tests, custom credentials).
    """

    def __init__(self, client: Optional[Any] = None):
        self._client = client
        self._lock = threading.Lock()

    def _get_client(self) -> Any:
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = texttospeech.TextToSpeechClient()
        return self._client

    @staticmethod
    def build_request(text: str, voice: VoiceProfile, audio_config: AudioConfig) -> dict:
        """Assemble keyword arguments for TextToSpeechClient.synthesize_speech."""
        return {
            "input": texttospeech.SynthesisInput(text=text),
            "voice": texttospeech.VoiceSelectionParams(
                language_code=voice.language_code,
                name=voice.name,
                ssml_gender=texttospeech.SsmlVoiceGender[voice.gender],
            ),
            "audio_config": texttospeech.AudioConfig(
                audio_encoding=texttospeech.AudioEncoding[audio_config.encoding],
                speaking_rate=audio_config.speaking_rate,
                pitch=audio_config.pitch,
                volume_gain_db=audio_config.volume_gain_db,
                effects_profile_id=list(audio_config.effects_profile_id),
            ),
        }

    def synthesize(
        self,
        text: str,
        voice: VoiceProfile,
        audio_config: AudioConfig,
        timeout_s: Optional[float] = None,
    ) -> bytes:
        request = self.build_request(text, voice, audio_config)
        debug(_LOG, "synthesize_speech", voice=voice.name, chars=len(text), timeout_s=timeout_s)
        try:
            response = self._get_client().synthesize_speech(**request, timeout=timeout_s)
        except (gexc.GoogleAPIError, ConnectionError) as e:
            raise classify_service_error(e) from e
        return response.audio_content
