"""
FastAPI Application Entry Point.

Creates the FastAPI application for podcast-tts and registers the episode
router (/v1/episodes, /v1/usage, /health, /metrics).

Usage:
    # Run with uvicorn
    uvicorn podcast_tts.main:app --host 0.0.0.0 --port 8080

    # Or use the module directly
    python -m uvicorn podcast_tts.main:app --reload
"""

from __future__ import annotations

from fastapi import FastAPI

from podcast_tts import __version__
from podcast_tts.api.routes import router
from podcast_tts.core.logging import configure_logging


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    The service itself is built lazily on the first request that needs it,
    so the app starts without cloud credentials.
    """
    # Initialize structured logging (reads PODCAST_TTS_LOG_LEVEL env var)
    configure_logging()

    app = FastAPI(title="podcast-tts", version=__version__)
    app.include_router(router)
    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
