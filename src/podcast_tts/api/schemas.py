"""
API Request/Response Schemas.

Pydantic models for the episode endpoints. They check shape and basic
bounds; the service applies the authoritative validation (blank text,
configured maximum length) and reports it as INVALID_INPUT.

Example Request:
    {
        "text": "Long article text ...",
        "title": "Why MP3 frames concatenate",
        "source": "https://example.com/posts/mp3-frames",
        "description": "A short note on frame sync."
    }
"""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class EpisodeCreate(BaseModel):
    """
    Request body for POST /v1/episodes.

    Attributes:
        text: Article text to narrate.
        title: Episode title; also names the audio file.
        source: Canonical URL or id; identifies the item in the index.
        description: Optional summary kept with the index entry.
    """
    text: str = Field(..., min_length=1, description="Article text to narrate")
    title: str = Field(..., min_length=1, max_length=300, description="Episode title")
    source: Optional[str] = Field(default=None, max_length=2048, description="Canonical URL or id")
    description: Optional[str] = Field(default=None, max_length=2000, description="Optional summary")


class VoiceOut(BaseModel):
    language_code: str
    name: str
    gender: str
    pool: str


class EpisodeOut(BaseModel):
    """Response for POST /v1/episodes."""
    ok: bool = True
    request_id: str
    item_key: str
    artifact_key: str
    audio_ref: str
    title: str
    cache_status: str = Field(..., description='"index", "artifact" or "miss"')
    chunk_count: int
    resumed_chunks: int
    synthesis_calls: int
    billed_chars: int
    audio_bytes: int
    estimated_duration_s: int
    total_seconds: float
    voice: Optional[VoiceOut] = None


class EpisodeEntry(BaseModel):
    item_key: str
    title: str
    processed_date: str
    audio_ref: str
    description: Optional[str] = None


class EpisodeList(BaseModel):
    ok: bool = True
    count: int
    episodes: List[EpisodeEntry]


class UsageOut(BaseModel):
    """Response for GET /v1/usage."""
    ok: bool = True
    month: str
    chars_used: int
    article_count: int
    cost_estimate: float
    lifetime_chars: int
    lifetime_articles: int
    lifetime_cost: float
    months_tracked: int
    free_tier_chars: int
    free_tier_remaining: int


class ErrorOut(BaseModel):
    ok: bool = False
    error: str
    message: str
    details: Optional[Dict[str, object]] = None
