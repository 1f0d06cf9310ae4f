"""
Tests for the Google Cloud Text-to-Speech adapter.

Tests cover:
- classify_service_error() for google-api-core exceptions
- build_request() field mapping
- synthesize() with a mocked TextToSpeechClient
"""
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gexc
from google.cloud import texttospeech

from podcast_tts.core.config import AudioConfig
from podcast_tts.core.errors import ServiceError, SizeLimitError
from podcast_tts.tts.client import GoogleSpeechClient, classify_service_error, is_size_limit_message
from podcast_tts.tts.voices import VoiceProfile

VOICE = VoiceProfile(language_code="en-US", name="en-US-Chirp3-HD-Orion", gender="MALE", pool="premium-male")

SIZE_MESSAGE = "Either `input.text` or `input.ssml` is longer than the limit of 5000 bytes."


class TestClassifyServiceError:

    def test_size_limit(self):
        err = classify_service_error(gexc.InvalidArgument(SIZE_MESSAGE))
        assert isinstance(err, SizeLimitError)

    def test_other_invalid_argument_is_not_retryable(self):
        err = classify_service_error(gexc.InvalidArgument("voice name is not supported"))
        assert isinstance(err, ServiceError)
        assert err.retryable is False
        assert err.status_code == 400

    @pytest.mark.parametrize("exc", [
        gexc.ServiceUnavailable("down"),
        gexc.ResourceExhausted("quota"),
        gexc.InternalServerError("oops"),
        gexc.DeadlineExceeded("slow"),
        gexc.RetryError("gave up", None),
        ConnectionError("reset"),
    ])
    def test_retryable(self, exc):
        err = classify_service_error(exc)
        assert isinstance(err, ServiceError)
        assert err.retryable is True

    def test_permission_denied_not_retryable(self):
        err = classify_service_error(gexc.PermissionDenied("no"))
        assert err.retryable is False
        assert err.status_code == 403

    def test_size_limit_message_detection(self):
        assert is_size_limit_message(SIZE_MESSAGE)
        assert not is_size_limit_message("")
        assert not is_size_limit_message("bad voice")


class TestBuildRequest:

    def test_fields(self):
        request = GoogleSpeechClient.build_request("Hello there.", VOICE, AudioConfig(speaking_rate=1.1))

        assert request["input"].text == "Hello there."
        assert request["voice"].name == "en-US-Chirp3-HD-Orion"
        assert request["voice"].language_code == "en-US"
        assert request["voice"].ssml_gender == texttospeech.SsmlVoiceGender.MALE
        assert request["audio_config"].audio_encoding == texttospeech.AudioEncoding.MP3
        assert request["audio_config"].speaking_rate == pytest.approx(1.1)
        assert list(request["audio_config"].effects_profile_id) == ["headphone-class-device"]


class TestSynthesize:

    def test_returns_audio_content(self):
        mock_client = MagicMock()
        mock_client.synthesize_speech.return_value.audio_content = b"mp3-bytes"
        client = GoogleSpeechClient(client=mock_client)

        audio = client.synthesize("Hello.", VOICE, AudioConfig(), timeout_s=12.0)

        assert audio == b"mp3-bytes"
        kwargs = mock_client.synthesize_speech.call_args.kwargs
        assert kwargs["timeout"] == 12.0
        assert kwargs["input"].text == "Hello."

    def test_size_rejection_raises_size_limit_error(self):
        mock_client = MagicMock()
        mock_client.synthesize_speech.side_effect = gexc.InvalidArgument(SIZE_MESSAGE)
        client = GoogleSpeechClient(client=mock_client)

        with pytest.raises(SizeLimitError) as exc_info:
            client.synthesize("x" * 6000, VOICE, AudioConfig())
        assert isinstance(exc_info.value.__cause__, gexc.InvalidArgument)

    def test_unavailable_raises_retryable_service_error(self):
        mock_client = MagicMock()
        mock_client.synthesize_speech.side_effect = gexc.ServiceUnavailable("try later")
        client = GoogleSpeechClient(client=mock_client)

        with pytest.raises(ServiceError) as exc_info:
            client.synthesize("Hello.", VOICE, AudioConfig())
        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 503


@pytest.mark.slow
def test_live_synthesis_returns_mp3():
    """Calls the real service; needs GOOGLE_APPLICATION_CREDENTIALS."""
    import os

    if not os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
        pytest.skip("GOOGLE_APPLICATION_CREDENTIALS not set")

    audio = GoogleSpeechClient().synthesize("Hello from the test suite.", VOICE, AudioConfig())
    assert audio[:3] == b"ID3" or audio[:2] in (b"\xff\xfb", b"\xff\xf3", b"\xff\xf2")
