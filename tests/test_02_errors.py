"""
Tests for the error taxonomy.

Tests cover:
- Error codes carried by each exception class
- to_dict() response shape
- Class hierarchy used by the pipeline (FatalError, StorageError)
"""
import pytest

from podcast_tts.core.errors import (
    CheckpointError,
    ErrorCode,
    FatalError,
    InputError,
    PipelineTimeoutError,
    PodcastError,
    ServiceError,
    SizeLimitError,
    StorageError,
    VersionConflictError,
)


class TestErrorCodes:
    """Each exception carries its code."""

    @pytest.mark.parametrize("exc, code", [
        (InputError("x"), ErrorCode.INVALID_INPUT),
        (SizeLimitError("x"), ErrorCode.SIZE_LIMIT),
        (ServiceError("x"), ErrorCode.SERVICE_ERROR),
        (FatalError("x"), ErrorCode.RETRIES_EXHAUSTED),
        (PipelineTimeoutError("x"), ErrorCode.TIMEOUT),
        (CheckpointError("x"), ErrorCode.CHECKPOINT_CORRUPT),
        (StorageError("x"), ErrorCode.STORAGE_ERROR),
        (VersionConflictError("x"), ErrorCode.VERSION_CONFLICT),
    ])
    def test_code(self, exc, code):
        assert exc.code == code
        assert isinstance(exc, PodcastError)

    def test_fatal_error_custom_code(self):
        err = FatalError("bad voice", code=ErrorCode.INVALID_VOICE)
        assert err.code == ErrorCode.INVALID_VOICE


class TestHierarchy:

    def test_timeout_and_checkpoint_are_fatal(self):
        assert issubclass(PipelineTimeoutError, FatalError)
        assert issubclass(CheckpointError, FatalError)

    def test_version_conflict_is_storage_error(self):
        assert issubclass(VersionConflictError, StorageError)

    def test_service_error_retryable_default(self):
        err = ServiceError("throttled", status_code=429)
        assert err.retryable is True
        assert err.status_code == 429
        assert ServiceError("bad", retryable=False).retryable is False


class TestToDict:

    def test_without_details(self):
        assert InputError("Text is required").to_dict() == {
            "ok": False,
            "error": "INVALID_INPUT",
            "message": "Text is required",
        }

    def test_with_details(self):
        d = FatalError("gave up", details={"index": 3}).to_dict()
        assert d["ok"] is False
        assert d["error"] == "RETRIES_EXHAUSTED"
        assert d["details"] == {"index": 3}
