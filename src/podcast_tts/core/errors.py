"""
Error Codes and Exception Taxonomy.

Every failure raised by the narration pipeline is a PodcastError carrying a
stable error code, a human-readable message and optional details. The API
layer turns these into JSON bodies via to_dict(); the CLI prints them.

Taxonomy:
    InputError      - Empty or unusable input. Raised before any service
                      call, so it never costs anything.
    SizeLimitError  - The synthesis service rejected a text as too large.
                      Recovered inside the Synthesizer by shrink-retry.
    ServiceError    - Transient or permanent failure talking to the
                      synthesis service. Retried with bounded backoff when
                      retryable.
    FatalError      - Retries exhausted, malformed voice profile, corrupt
                      checkpoint or deadline exceeded. Propagated to the
                      caller; nothing is committed.
    StorageError    - Blob store or JSON document failure.

See Also:
    - tts/synthesizer.py: Shrink-retry and backoff loops
    - services/podcast_service.py: Where errors stop the pipeline
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """
    Standardized error codes for API and CLI responses.
    """
    INVALID_INPUT = "INVALID_INPUT"             # Empty / oversized input text
    SIZE_LIMIT = "SIZE_LIMIT"                   # Service byte limit exceeded
    SERVICE_ERROR = "SERVICE_ERROR"             # Synthesis service failure
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"     # Bounded retry gave up
    INVALID_VOICE = "INVALID_VOICE"             # Malformed voice profile / pool
    CHECKPOINT_CORRUPT = "CHECKPOINT_CORRUPT"   # Scratch data unusable
    TIMEOUT = "TIMEOUT"                         # Pipeline deadline exceeded
    STORAGE_ERROR = "STORAGE_ERROR"             # Blob or document failure
    VERSION_CONFLICT = "VERSION_CONFLICT"       # Optimistic write lost the race
    INTERNAL_ERROR = "INTERNAL_ERROR"           # Unexpected error


class PodcastError(Exception):
    """
    Base exception for narration errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional dictionary with additional context.
    """

    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to standardized error response dict."""
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class InputError(PodcastError):
    """Raised for empty, whitespace-only or otherwise unusable input."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class SizeLimitError(PodcastError):
    """Raised when the synthesis service rejects a text for its byte size."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SIZE_LIMIT, details)


class ServiceError(PodcastError):
    """
    Raised when the synthesis service call fails.

    Attributes:
        retryable: True for throttling, unavailability and network errors.
        status_code: Upstream status code when known.
    """

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        status_code: Optional[int] = None,
        details: Optional[Dict] = None,
    ):
        super().__init__(message, ErrorCode.SERVICE_ERROR, details)
        self.retryable = retryable
        self.status_code = status_code


class FatalError(PodcastError):
    """Raised when an item cannot be completed; nothing is committed."""

    def __init__(self, message: str, code: str = ErrorCode.RETRIES_EXHAUSTED, details: Optional[Dict] = None):
        super().__init__(message, code, details)


class PipelineTimeoutError(FatalError):
    """Raised when the whole-pipeline deadline passes between chunks."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.TIMEOUT, details)


class CheckpointError(FatalError):
    """Raised when checkpointed chunk audio cannot be trusted."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CHECKPOINT_CORRUPT, details)


class StorageError(PodcastError):
    """Raised when the blob store or a JSON document cannot be used."""

    def __init__(self, message: str, code: str = ErrorCode.STORAGE_ERROR, details: Optional[Dict] = None):
        super().__init__(message, code, details)


class VersionConflictError(StorageError):
    """Raised when a conditional write finds a newer version in place."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.VERSION_CONFLICT, details)
