"""
Prometheus Metrics for the narration pipeline.

Metrics Exposed:
    podcast_episodes_total              - Episodes by final status
    podcast_episode_duration_seconds    - Wall time per produced episode
    podcast_synthesis_calls_total       - Service calls by outcome
    podcast_billed_chars_total          - Characters accepted (billed) by the service
    podcast_truncations_total           - Chunks trimmed before submission
    podcast_shrink_retries_total        - Retries after a service size rejection
    podcast_service_retries_total       - Backoff retries after service errors
    podcast_cache_gate_total            - Cache gate decisions (index/artifact/miss)
    podcast_chunks_resumed_total        - Chunks loaded from checkpoints

Usage:
    from podcast_tts.core.metrics import metrics

    metrics.record_cache_gate("miss")
    metrics.record_synthesis_call("ok", billed_chars=693)
    content, content_type = metrics.get_metrics_response()

See Also:
    - api/routes.py: /metrics endpoint
"""
from __future__ import annotations

from typing import Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class PodcastMetrics:
    """
    Metrics collector backed by a private CollectorRegistry.

    A private registry keeps these metrics apart from anything else in
    the process and lets tests build fresh instances.
    """

    def __init__(self) -> None:
        self._registry = CollectorRegistry()

        self._episodes_total = Counter(
            "podcast_episodes_total",
            "Episodes requested, by final status",
            ["status"],
            registry=self._registry,
        )
        self._episode_duration = Histogram(
            "podcast_episode_duration_seconds",
            "Wall time to produce an episode",
            ["cache_status"],
            buckets=(0.1, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0),
            registry=self._registry,
        )
        self._synthesis_calls = Counter(
            "podcast_synthesis_calls_total",
            "Synthesis service calls, by outcome",
            ["outcome"],
            registry=self._registry,
        )
        self._billed_chars = Counter(
            "podcast_billed_chars_total",
            "Characters accepted by the synthesis service",
            registry=self._registry,
        )
        self._truncations = Counter(
            "podcast_truncations_total",
            "Chunks trimmed to the byte margin before submission",
            registry=self._registry,
        )
        self._shrink_retries = Counter(
            "podcast_shrink_retries_total",
            "Retries after the service rejected a text as too large",
            registry=self._registry,
        )
        self._service_retries = Counter(
            "podcast_service_retries_total",
            "Backoff retries after transient service errors",
            registry=self._registry,
        )
        self._cache_gate = Counter(
            "podcast_cache_gate_total",
            "Cache gate decisions",
            ["result"],
            registry=self._registry,
        )
        self._chunks_resumed = Counter(
            "podcast_chunks_resumed_total",
            "Chunks reused from checkpoints instead of re-synthesized",
            registry=self._registry,
        )

    def record_episode(self, status: str, duration: float = 0.0, cache_status: str = "miss") -> None:
        self._episodes_total.labels(status=status).inc()
        if status == "success":
            self._episode_duration.labels(cache_status=cache_status).observe(duration)

    def record_synthesis_call(self, outcome: str, billed_chars: int = 0) -> None:
        """Record one service call; billed_chars only for accepted calls."""
        self._synthesis_calls.labels(outcome=outcome).inc()
        if billed_chars > 0:
            self._billed_chars.inc(billed_chars)

    def record_truncation(self) -> None:
        self._truncations.inc()

    def record_shrink_retry(self) -> None:
        self._shrink_retries.inc()

    def record_service_retry(self) -> None:
        self._service_retries.inc()

    def record_cache_gate(self, result: str) -> None:
        self._cache_gate.labels(result=result).inc()

    def record_chunks_resumed(self, count: int) -> None:
        if count > 0:
            self._chunks_resumed.inc(count)

    def get_metrics_response(self) -> Tuple[bytes, str]:
        """Return (body, content_type) for a /metrics response."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Global metrics instance
metrics = PodcastMetrics()
