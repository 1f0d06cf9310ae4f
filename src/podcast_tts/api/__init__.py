"""
FastAPI REST API Layer for podcast-tts.

This package defines all HTTP endpoints:
    - routes.py: Episode, usage, health and metrics endpoints
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
