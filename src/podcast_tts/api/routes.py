"""
Episode API Routes.

Endpoints:
    POST /v1/episodes     - Produce (or find) the episode for an article
    GET  /v1/episodes     - List finished episodes, newest first
    GET  /v1/usage        - Usage ledger for the current month
    GET  /health          - Health check for load balancers and probes
    GET  /metrics         - Prometheus metrics

Request Flow (POST /v1/episodes):
    1. Generate unique request ID for tracing
    2. Build EpisodeRequest from the body
    3. Call PodcastService.create_episode()
    4. Return episode metadata (the audio itself lives at audio_ref)

Error Handling:
    All errors are returned as JSON with standardized format:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "details": {...}
    }

    HTTP status codes are mapped from error codes:
        - INVALID_INPUT -> 400 Bad Request
        - TIMEOUT -> 408 Request Timeout
        - RETRIES_EXHAUSTED / SERVICE_ERROR / SIZE_LIMIT -> 502 Bad Gateway
        - everything else -> 500 Internal Server Error

Example Usage:
    curl -X POST http://localhost:8000/v1/episodes \\
        -H "Content-Type: application/json" \\
        -d '{"title": "Hello", "text": "Some article text.", "source": "https://example.com/hello"}'
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from podcast_tts.api.dependencies import get_podcast_service
from podcast_tts.api.schemas import EpisodeCreate, EpisodeEntry, EpisodeList, EpisodeOut, UsageOut, VoiceOut
from podcast_tts.core.errors import ErrorCode, PodcastError
from podcast_tts.core.logging import fail, get_logger, set_request_id
from podcast_tts.core.metrics import metrics
from podcast_tts.services.podcast_service import EpisodeRequest, PodcastService

router = APIRouter()

_LOG = get_logger("podcast-tts.api")

STATUS_MAP = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.TIMEOUT: 408,
    ErrorCode.RETRIES_EXHAUSTED: 502,
    ErrorCode.SERVICE_ERROR: 502,
    ErrorCode.SIZE_LIMIT: 502,
}


def _error_response(error: PodcastError, request_id: str) -> JSONResponse:
    """Standardized JSON error response; the status follows the error code."""
    content = error.to_dict()
    content["request_id"] = request_id
    return JSONResponse(status_code=STATUS_MAP.get(error.code, 500), content=content)


def _internal_error(request_id: str) -> JSONResponse:
    # Log internally but don't expose details
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": request_id,
        },
    )


def _new_request_id() -> str:
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return rid


@router.post("/v1/episodes", response_model=EpisodeOut)
def create_episode(
    req: EpisodeCreate,
    service: PodcastService = Depends(get_podcast_service),
):
    """
    Produce the episode for one article.

    Repeating the request for the same source returns the existing episode
    with cache_status "index" and makes no synthesis calls.

    Raises:
        400: Invalid input
        408: Pipeline deadline exceeded (checkpoints are kept; retry resumes)
        502: Synthesis service kept failing
        500: Storage or internal error
    """
    rid = _new_request_id()
    try:
        result = service.create_episode(
            EpisodeRequest(text=req.text, title=req.title, source=req.source, description=req.description),
            request_id=rid,
        )
    except PodcastError as e:
        return _error_response(e, rid)
    except Exception as e:
        fail(_LOG, "unhandled_error", error=str(e), error_type=type(e).__name__)
        return _internal_error(rid)

    return EpisodeOut(
        request_id=rid,
        item_key=result.item_key,
        artifact_key=result.artifact_key,
        audio_ref=result.audio_ref,
        title=result.title,
        cache_status=result.cache_status,
        chunk_count=result.chunk_count,
        resumed_chunks=result.resumed_chunks,
        synthesis_calls=result.synthesis_calls,
        billed_chars=result.billed_chars,
        audio_bytes=result.audio_bytes,
        estimated_duration_s=result.estimated_duration_s,
        total_seconds=round(result.total_seconds, 3),
        voice=VoiceOut(**result.voice.to_dict()) if result.voice else None,
    )


@router.get("/v1/episodes", response_model=EpisodeList)
def list_episodes(
    limit: int = Query(default=50, ge=1, le=1000),
    service: PodcastService = Depends(get_podcast_service),
):
    """Finished episodes from the index, newest first."""
    rid = _new_request_id()
    try:
        items = service.list_episodes(limit)
    except PodcastError as e:
        return _error_response(e, rid)

    episodes = [
        EpisodeEntry(
            item_key=key,
            title=entry.title,
            processed_date=entry.processed_date,
            audio_ref=entry.audio_ref,
            description=entry.description,
        )
        for key, entry in items
    ]
    return EpisodeList(count=len(episodes), episodes=episodes)


@router.get("/v1/usage", response_model=UsageOut)
def usage(service: PodcastService = Depends(get_podcast_service)):
    """Characters, articles and estimated cost for the current month."""
    rid = _new_request_id()
    try:
        stats = service.usage_stats()
    except PodcastError as e:
        return _error_response(e, rid)

    free_tier = service.config.usage.free_tier_chars
    return UsageOut(
        month=stats.current.month_key,
        chars_used=stats.current.chars_used,
        article_count=stats.current.article_count,
        cost_estimate=stats.current.cost_estimate,
        lifetime_chars=stats.total_chars,
        lifetime_articles=stats.total_articles,
        lifetime_cost=stats.total_cost,
        months_tracked=stats.months_tracked,
        free_tier_chars=free_tier,
        free_tier_remaining=max(0, free_tier - stats.current.chars_used),
    )


@router.get("/health")
def health(service: PodcastService = Depends(get_podcast_service)):
    """
    Health check endpoint for load balancers and orchestration.

    Returns static service information (storage backend, voice pools,
    chunk sizing); it makes no calls to the synthesis service.
    """
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Exposes:
        - podcast_episodes_total: Episodes by status
        - podcast_episode_duration_seconds: Episode latency by cache status
        - podcast_synthesis_calls_total: Service calls by outcome
        - podcast_billed_chars_total: Characters accepted by the service
        - podcast_cache_gate_total: Cache gate results
    """
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
