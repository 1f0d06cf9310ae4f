"""
Configuration Management for podcast-tts.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration sections
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (USE_CLOUD_STORAGE, GCS_BUCKET_NAME, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    chunking:
      target_size: 1000
      safety_factor: 0.7

    storage:
      backend: local
      base_dir: ./storage

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import os
import yaml


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    This exception is thrown when a configuration value is outside
    acceptable bounds or of the wrong type.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Chunking: Boundary cascade sizing
        - Synthesis: Service byte limit, truncation and retry bounds
        - Audio: Output encoding passed to the synthesis service
        - Voices: Language and RNG seed for voice selection
        - Storage: Blob backend and document keys
        - Usage: Free tier and pricing for cost estimates
        - Pipeline: Whole-invocation deadline and input bounds
        - Logging: Log level and formatting
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Chunking
    # ─────────────────────────────────────────────────────────────────────────
    CHUNKING_TARGET_SIZE = 1000         # Target chunk size in characters
    CHUNKING_SAFETY_FACTOR = 0.7        # safe size = target * factor
    CHUNKING_MAX_BYTES = 5000           # Hard per-chunk UTF-8 ceiling

    # ─────────────────────────────────────────────────────────────────────────
    # Synthesis
    # ─────────────────────────────────────────────────────────────────────────
    SYNTHESIS_HARD_LIMIT_BYTES = 5000       # Service rejects anything larger
    SYNTHESIS_TRUNCATE_TARGET_BYTES = 4800  # Pre-check trims down to this
    SYNTHESIS_TRUNCATE_STEP_CHARS = 100     # Tail decrement while trimming
    SYNTHESIS_SHRINK_FACTOR = 0.8           # Shrink-retry keeps this fraction
    SYNTHESIS_MAX_SHRINK_ATTEMPTS = 5
    SYNTHESIS_MIN_TEXT_CHARS = 50           # Give up below this length
    SYNTHESIS_MAX_SERVICE_RETRIES = 3
    SYNTHESIS_BACKOFF_BASE_S = 1.0
    SYNTHESIS_BACKOFF_MAX_S = 30.0
    SYNTHESIS_BACKOFF_JITTER_S = 0.5

    # ─────────────────────────────────────────────────────────────────────────
    # Audio
    # ─────────────────────────────────────────────────────────────────────────
    AUDIO_ENCODING = "MP3"
    AUDIO_SPEAKING_RATE = 1.0
    AUDIO_PITCH = 0.0
    AUDIO_VOLUME_GAIN_DB = 0.0
    AUDIO_EFFECTS_PROFILE_ID = ("headphone-class-device",)

    # ─────────────────────────────────────────────────────────────────────────
    # Voices
    # ─────────────────────────────────────────────────────────────────────────
    VOICES_LANGUAGE_CODE = "en-US"

    # ─────────────────────────────────────────────────────────────────────────
    # Storage
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_BACKEND = "local"                   # local | gcs
    STORAGE_BASE_DIR = "./storage"
    STORAGE_AUDIO_PREFIX = "audio"
    STORAGE_CHECKPOINT_PREFIX = "checkpoints"
    STORAGE_INDEX_KEY = "data/processed-articles.json"
    STORAGE_LEDGER_KEY = "data/usage-stats.json"
    STORAGE_EVENT_LOG_KEY = "data/processing-log.json"
    STORAGE_DOCUMENT_MAX_ATTEMPTS = 5           # Optimistic write retries

    # ─────────────────────────────────────────────────────────────────────────
    # Usage
    # ─────────────────────────────────────────────────────────────────────────
    USAGE_FREE_TIER_CHARS = 1_000_000   # Monthly free characters
    USAGE_RATE_PER_MILLION = 30.0       # USD per million characters past free tier
    USAGE_MAX_EVENTS = 1000             # Processing log entries kept

    # ─────────────────────────────────────────────────────────────────────────
    # Pipeline
    # ─────────────────────────────────────────────────────────────────────────
    PIPELINE_TIMEOUT_S = 540.0          # Whole-invocation deadline
    PIPELINE_MAX_TEXT_LENGTH = 50000    # Longest accepted article

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80     # Characters to show in text preview
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


@dataclass
class ChunkingConfig:
    """
    Text chunking configuration.

    The safe size (target_size * safety_factor) leaves headroom for
    multi-byte characters; max_bytes is the per-chunk ceiling.
    """
    target_size: int = Defaults.CHUNKING_TARGET_SIZE
    safety_factor: float = Defaults.CHUNKING_SAFETY_FACTOR
    max_bytes: int = Defaults.CHUNKING_MAX_BYTES


@dataclass
class SynthesisConfig:
    """
    Synthesis service limits and retry bounds.

    Truncation happens before submission; shrink-retry and backoff
    happen after the service rejects a call.
    """
    hard_limit_bytes: int = Defaults.SYNTHESIS_HARD_LIMIT_BYTES
    truncate_target_bytes: int = Defaults.SYNTHESIS_TRUNCATE_TARGET_BYTES
    truncate_step_chars: int = Defaults.SYNTHESIS_TRUNCATE_STEP_CHARS
    shrink_factor: float = Defaults.SYNTHESIS_SHRINK_FACTOR
    max_shrink_attempts: int = Defaults.SYNTHESIS_MAX_SHRINK_ATTEMPTS
    min_text_chars: int = Defaults.SYNTHESIS_MIN_TEXT_CHARS
    max_service_retries: int = Defaults.SYNTHESIS_MAX_SERVICE_RETRIES
    backoff_base_s: float = Defaults.SYNTHESIS_BACKOFF_BASE_S
    backoff_max_s: float = Defaults.SYNTHESIS_BACKOFF_MAX_S
    backoff_jitter_s: float = Defaults.SYNTHESIS_BACKOFF_JITTER_S


@dataclass
class AudioConfig:
    """Audio output settings sent with every synthesis call."""
    encoding: str = Defaults.AUDIO_ENCODING
    speaking_rate: float = Defaults.AUDIO_SPEAKING_RATE
    pitch: float = Defaults.AUDIO_PITCH
    volume_gain_db: float = Defaults.AUDIO_VOLUME_GAIN_DB
    effects_profile_id: List[str] = field(default_factory=lambda: list(Defaults.AUDIO_EFFECTS_PROFILE_ID))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "encoding": self.encoding,
            "speaking_rate": self.speaking_rate,
            "pitch": self.pitch,
            "volume_gain_db": self.volume_gain_db,
            "effects_profile_id": list(self.effects_profile_id),
        }


@dataclass
class VoicesConfig:
    """
    Voice selection configuration.

    pools maps a pool name to a list of voice names. When empty, the
    built-in Chirp3-HD pools are used (see tts/voices.py).
    """
    language_code: str = Defaults.VOICES_LANGUAGE_CODE
    seed: Optional[int] = None
    pools: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class StorageConfig:
    """Blob store backend and the keys of the durable documents."""
    backend: str = Defaults.STORAGE_BACKEND
    base_dir: str = Defaults.STORAGE_BASE_DIR
    bucket_name: Optional[str] = None
    audio_prefix: str = Defaults.STORAGE_AUDIO_PREFIX
    checkpoint_prefix: str = Defaults.STORAGE_CHECKPOINT_PREFIX
    index_key: str = Defaults.STORAGE_INDEX_KEY
    ledger_key: str = Defaults.STORAGE_LEDGER_KEY
    event_log_key: str = Defaults.STORAGE_EVENT_LOG_KEY
    document_max_attempts: int = Defaults.STORAGE_DOCUMENT_MAX_ATTEMPTS


@dataclass
class UsageConfig:
    """Pricing inputs for the monthly cost estimate."""
    free_tier_chars: int = Defaults.USAGE_FREE_TIER_CHARS
    rate_per_million: float = Defaults.USAGE_RATE_PER_MILLION
    max_events: int = Defaults.USAGE_MAX_EVENTS


@dataclass
class PipelineConfig:
    """Whole-invocation bounds."""
    timeout_s: float = Defaults.PIPELINE_TIMEOUT_S
    max_text_length: int = Defaults.PIPELINE_MAX_TEXT_LENGTH


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Episode lifecycle, cache gate status (default)
        3 = VERBOSE: Per-chunk timing, retries
        4 = DEBUG: Internal state, full tracing
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ServiceConfig:
    """
    Validated configuration for PodcastService.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = ServiceConfig.from_settings(settings)
        print(config.chunking.target_size)
    """
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    voices: VoicesConfig = field(default_factory=VoicesConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    usage: UsageConfig = field(default_factory=UsageConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ServiceConfig":
        """
        Create ServiceConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated ServiceConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Chunking
        # ─────────────────────────────────────────────────────────────────────
        chunking_raw = raw.get("chunking", {}) or {}
        chunking = ChunkingConfig(
            target_size=int(chunking_raw.get("target_size", Defaults.CHUNKING_TARGET_SIZE)),
            safety_factor=float(chunking_raw.get("safety_factor", Defaults.CHUNKING_SAFETY_FACTOR)),
            max_bytes=int(chunking_raw.get("max_bytes", Defaults.CHUNKING_MAX_BYTES)),
        )
        cls._validate_positive("chunking.target_size", chunking.target_size)
        cls._validate_range("chunking.safety_factor", chunking.safety_factor, 0.5, 0.95)
        cls._validate_positive("chunking.max_bytes", chunking.max_bytes)

        # ─────────────────────────────────────────────────────────────────────
        # Synthesis
        # ─────────────────────────────────────────────────────────────────────
        synth_raw = raw.get("synthesis", {}) or {}
        synthesis = SynthesisConfig(
            hard_limit_bytes=int(synth_raw.get("hard_limit_bytes", Defaults.SYNTHESIS_HARD_LIMIT_BYTES)),
            truncate_target_bytes=int(synth_raw.get("truncate_target_bytes", Defaults.SYNTHESIS_TRUNCATE_TARGET_BYTES)),
            truncate_step_chars=int(synth_raw.get("truncate_step_chars", Defaults.SYNTHESIS_TRUNCATE_STEP_CHARS)),
            shrink_factor=float(synth_raw.get("shrink_factor", Defaults.SYNTHESIS_SHRINK_FACTOR)),
            max_shrink_attempts=int(synth_raw.get("max_shrink_attempts", Defaults.SYNTHESIS_MAX_SHRINK_ATTEMPTS)),
            min_text_chars=int(synth_raw.get("min_text_chars", Defaults.SYNTHESIS_MIN_TEXT_CHARS)),
            max_service_retries=int(synth_raw.get("max_service_retries", Defaults.SYNTHESIS_MAX_SERVICE_RETRIES)),
            backoff_base_s=float(synth_raw.get("backoff_base_s", Defaults.SYNTHESIS_BACKOFF_BASE_S)),
            backoff_max_s=float(synth_raw.get("backoff_max_s", Defaults.SYNTHESIS_BACKOFF_MAX_S)),
            backoff_jitter_s=float(synth_raw.get("backoff_jitter_s", Defaults.SYNTHESIS_BACKOFF_JITTER_S)),
        )
        cls._validate_positive("synthesis.hard_limit_bytes", synthesis.hard_limit_bytes)
        cls._validate_range("synthesis.truncate_target_bytes", synthesis.truncate_target_bytes,
                            1, synthesis.hard_limit_bytes)
        cls._validate_positive("synthesis.truncate_step_chars", synthesis.truncate_step_chars)
        cls._validate_range("synthesis.shrink_factor", synthesis.shrink_factor, 0.1, 0.95)
        cls._validate_non_negative("synthesis.max_shrink_attempts", synthesis.max_shrink_attempts)
        cls._validate_positive("synthesis.min_text_chars", synthesis.min_text_chars)
        cls._validate_non_negative("synthesis.max_service_retries", synthesis.max_service_retries)
        cls._validate_non_negative("synthesis.backoff_base_s", synthesis.backoff_base_s)
        cls._validate_non_negative("synthesis.backoff_max_s", synthesis.backoff_max_s)
        cls._validate_non_negative("synthesis.backoff_jitter_s", synthesis.backoff_jitter_s)

        # ─────────────────────────────────────────────────────────────────────
        # Audio
        # ─────────────────────────────────────────────────────────────────────
        audio_raw = raw.get("audio", {}) or {}
        audio = AudioConfig(
            encoding=str(audio_raw.get("encoding", Defaults.AUDIO_ENCODING)).upper(),
            speaking_rate=float(audio_raw.get("speaking_rate", Defaults.AUDIO_SPEAKING_RATE)),
            pitch=float(audio_raw.get("pitch", Defaults.AUDIO_PITCH)),
            volume_gain_db=float(audio_raw.get("volume_gain_db", Defaults.AUDIO_VOLUME_GAIN_DB)),
            effects_profile_id=list(audio_raw.get("effects_profile_id", Defaults.AUDIO_EFFECTS_PROFILE_ID)),
        )
        cls._validate_range("audio.speaking_rate", audio.speaking_rate, 0.25, 4.0)
        cls._validate_range("audio.pitch", audio.pitch, -20.0, 20.0)

        # ─────────────────────────────────────────────────────────────────────
        # Voices (seed can come from the environment)
        # ─────────────────────────────────────────────────────────────────────
        voices_raw = raw.get("voices", {}) or {}
        seed_raw = os.getenv("PODCAST_TTS_VOICE_SEED", voices_raw.get("seed"))
        pools_raw = voices_raw.get("pools", {}) or {}
        voices = VoicesConfig(
            language_code=str(voices_raw.get("language_code", Defaults.VOICES_LANGUAGE_CODE)),
            seed=int(seed_raw) if seed_raw not in (None, "") else None,
            pools={str(k): [str(v) for v in (names or [])] for k, names in pools_raw.items()},
        )

        # ─────────────────────────────────────────────────────────────────────
        # Storage
        # ─────────────────────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {}) or {}
        storage = StorageConfig(
            backend=str(storage_raw.get("backend", Defaults.STORAGE_BACKEND)).lower(),
            base_dir=str(storage_raw.get("base_dir", Defaults.STORAGE_BASE_DIR)),
            bucket_name=storage_raw.get("bucket_name"),
            audio_prefix=str(storage_raw.get("audio_prefix", Defaults.STORAGE_AUDIO_PREFIX)).strip("/"),
            checkpoint_prefix=str(storage_raw.get("checkpoint_prefix", Defaults.STORAGE_CHECKPOINT_PREFIX)).strip("/"),
            index_key=str(storage_raw.get("index_key", Defaults.STORAGE_INDEX_KEY)),
            ledger_key=str(storage_raw.get("ledger_key", Defaults.STORAGE_LEDGER_KEY)),
            event_log_key=str(storage_raw.get("event_log_key", Defaults.STORAGE_EVENT_LOG_KEY)),
            document_max_attempts=int(storage_raw.get("document_max_attempts", Defaults.STORAGE_DOCUMENT_MAX_ATTEMPTS)),
        )
        if storage.backend not in ("local", "gcs"):
            raise ConfigValidationError(f"storage.backend must be 'local' or 'gcs', got {storage.backend}")
        if storage.backend == "gcs" and not storage.bucket_name:
            raise ConfigValidationError("storage.bucket_name is required for the gcs backend")
        cls._validate_positive("storage.document_max_attempts", storage.document_max_attempts)

        # ─────────────────────────────────────────────────────────────────────
        # Usage
        # ─────────────────────────────────────────────────────────────────────
        usage_raw = raw.get("usage", {}) or {}
        usage = UsageConfig(
            free_tier_chars=int(usage_raw.get("free_tier_chars", Defaults.USAGE_FREE_TIER_CHARS)),
            rate_per_million=float(usage_raw.get("rate_per_million", Defaults.USAGE_RATE_PER_MILLION)),
            max_events=int(usage_raw.get("max_events", Defaults.USAGE_MAX_EVENTS)),
        )
        cls._validate_non_negative("usage.free_tier_chars", usage.free_tier_chars)
        cls._validate_non_negative("usage.rate_per_million", usage.rate_per_million)
        cls._validate_positive("usage.max_events", usage.max_events)

        # ─────────────────────────────────────────────────────────────────────
        # Pipeline
        # ─────────────────────────────────────────────────────────────────────
        pipeline_raw = raw.get("pipeline", {}) or {}
        pipeline = PipelineConfig(
            timeout_s=float(pipeline_raw.get("timeout_s", Defaults.PIPELINE_TIMEOUT_S)),
            max_text_length=int(pipeline_raw.get("max_text_length", Defaults.PIPELINE_MAX_TEXT_LENGTH)),
        )
        cls._validate_positive("pipeline.timeout_s", pipeline.timeout_s)
        cls._validate_positive("pipeline.max_text_length", pipeline.max_text_length)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # Handle string log levels (e.g., "INFO", "DEBUG")
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            chunking=chunking,
            synthesis=synthesis,
            audio=audio,
            voices=voices,
            storage=storage,
            usage=usage,
            pipeline=pipeline,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_service_config() to get a validated ServiceConfig.

    Attributes:
        raw: Dictionary of raw configuration values.
    """
    raw: Dict[str, Any]

    @property
    def storage_backend(self) -> str:
        """Get the blob store backend name (local/gcs)."""
        return str(self.raw.get("storage", {}).get("backend", Defaults.STORAGE_BACKEND))

    @property
    def language_code(self) -> str:
        """Get the synthesis language code."""
        return str(self.raw.get("voices", {}).get("language_code", Defaults.VOICES_LANGUAGE_CODE))

    def get_service_config(self) -> ServiceConfig:
        """
        Get validated ServiceConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return ServiceConfig.from_settings(self)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    Environment variable overrides:
        - USE_CLOUD_STORAGE=true: Switch storage.backend to gcs
        - GCS_BUCKET_NAME: Set storage.bucket_name
        - PODCAST_TTS_STORAGE_DIR: Override storage.base_dir

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    storage = raw.setdefault("storage", {}) or {}
    raw["storage"] = storage
    if _env_flag("USE_CLOUD_STORAGE"):
        storage["backend"] = "gcs"
    bucket = os.getenv("GCS_BUCKET_NAME")
    if bucket:
        storage["bucket_name"] = bucket
    base_dir = os.getenv("PODCAST_TTS_STORAGE_DIR")
    if base_dir:
        storage["base_dir"] = base_dir

    return Settings(raw=raw)
