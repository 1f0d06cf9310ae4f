"""
podcast-tts Services Layer.

This package holds the business logic between the API/CLI and the
synthesis components.

Components:
    - podcast_service.py: PodcastService (episode pipeline orchestrator)
    - episode_index.py: Index of finished episodes (cache gate)
    - usage.py: Monthly usage ledger and processing event log
    - retention.py: Episode retention and removal
    - validators.py: Input validation functions
"""
from .podcast_service import (
    EpisodeRequest,
    EpisodeResult,
    PodcastService,
    get_service,
    reset_service,
)

__all__ = [
    "PodcastService",
    "EpisodeRequest",
    "EpisodeResult",
    "get_service",
    "reset_service",
]
