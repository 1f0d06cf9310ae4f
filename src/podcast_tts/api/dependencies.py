"""
FastAPI Dependency Injection Providers.

Dependencies:
    1. get_settings() - Loads and caches application configuration
    2. get_podcast_service() - Creates/returns the singleton PodcastService

Both are singletons so that every request shares one blob store, one set
of per-key locks and one speech client.

Usage in Route Handlers:
    from fastapi import Depends
    from podcast_tts.api.dependencies import get_podcast_service

    @router.post("/v1/episodes")
    def create(req: EpisodeCreate, service: PodcastService = Depends(get_podcast_service)):
        ...

Tests override get_podcast_service through app.dependency_overrides to
run the routes against a temp directory and a fake speech client.
"""
from __future__ import annotations

import os
from functools import lru_cache

from podcast_tts.core.config import Settings, load_settings
from podcast_tts.services.podcast_service import PodcastService, get_service


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The path comes from PODCAST_TTS_SETTINGS, default config/settings.yaml.
    Settings are immutable once loaded; restart to pick up changes.
    """
    return load_settings(os.getenv("PODCAST_TTS_SETTINGS", "config/settings.yaml"))


def get_podcast_service() -> PodcastService:
    """Get the singleton PodcastService instance."""
    return get_service(get_settings())
