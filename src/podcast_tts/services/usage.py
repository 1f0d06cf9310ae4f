"""
Monthly Usage Ledger and Processing Event Log.

Every finished episode adds its billed characters to the ledger bucket of
the current month. The ledger is the only place cost is visible, so its
counters only ever grow and every update is a conditional write.

Ledger document (usage-stats.json):

    {
      "history": {
        "2025-01": {"charsUsed": 1200000, "articleCount": 3, "costEstimate": 6.0}
      }
    }

costEstimate = max(0, charsUsed - free_tier_chars) / 1,000,000 * rate,
rounded to cents. With the default 1M free characters and $30 per million,
1.2M characters in a month cost $6.00.

Event log document (processing-log.json):

    {"events": [{"timestamp": "...", "title": "...", "charCount": 693, ...}]}

Only the newest max_events entries are kept.

Example:
    tracker = UsageTracker(store, "data/usage-stats.json", "data/processing-log.json")
    stats = tracker.record_usage("2025-01", 400_000)
    stats.current.cost_estimate   # 0.0 until the free tier is used up
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from podcast_tts.core.config import UsageConfig
from podcast_tts.core.logging import get_logger, info, verbose
from podcast_tts.tts.documents import JsonDocument
from podcast_tts.tts.storage import BlobStore

_LOG = get_logger("podcast-tts.usage")


def month_key(now: Optional[datetime] = None) -> str:
    """Ledger bucket for a moment in time, as YYYY-MM (UTC)."""
    now = now or datetime.now(timezone.utc)
    return f"{now.year:04d}-{now.month:02d}"


def compute_cost(chars: int, free_tier_chars: int = 1_000_000, rate_per_million: float = 30.0) -> float:
    """Estimated USD cost of chars within one month, rounded to cents."""
    billable = max(0, chars - free_tier_chars)
    return round(billable / 1_000_000 * rate_per_million, 2)


@dataclass
class UsageRecord:
    """One month of the ledger."""
    month_key: str
    chars_used: int = 0
    article_count: int = 0
    cost_estimate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "charsUsed": self.chars_used,
            "articleCount": self.article_count,
            "costEstimate": self.cost_estimate,
        }

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> "UsageRecord":
        return cls(
            month_key=key,
            chars_used=int(data.get("charsUsed", 0)),
            article_count=int(data.get("articleCount", 0)),
            cost_estimate=float(data.get("costEstimate", 0.0)),
        )


@dataclass
class UsageStats:
    """
    The current month plus lifetime aggregates over all months.

    Derived on every read; never stored.
    """
    current: UsageRecord
    total_chars: int
    total_articles: int
    total_cost: float
    months_tracked: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.current.month_key,
            **self.current.to_dict(),
            "lifetimeTotalChars": self.total_chars,
            "lifetimeArticleCount": self.total_articles,
            "lifetimeCostEstimate": self.total_cost,
            "monthsTracked": self.months_tracked,
        }


def _empty_ledger() -> Dict[str, Any]:
    return {"history": {}}


def _empty_log() -> Dict[str, Any]:
    return {"events": []}


class UsageTracker:
    """
    Ledger updates and the processing event log.

    Args:
        store: Blob store holding both documents.
        ledger_key: Key of the usage ledger.
        event_log_key: Key of the processing log.
        config: Free tier, rate and event log size.
        max_attempts: Conditional write attempts per update.
        clock: Returns the current time; replaced in tests.
    """

    def __init__(
        self,
        store: BlobStore,
        ledger_key: str = "data/usage-stats.json",
        event_log_key: str = "data/processing-log.json",
        config: Optional[UsageConfig] = None,
        max_attempts: int = 5,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._config = config or UsageConfig()
        self._clock = clock
        self._ledger = JsonDocument(store, ledger_key, default=_empty_ledger, max_attempts=max_attempts)
        self._events = JsonDocument(store, event_log_key, default=_empty_log, max_attempts=max_attempts)

    @property
    def config(self) -> UsageConfig:
        return self._config

    def _stats_from(self, ledger: Dict[str, Any], key: str) -> UsageStats:
        history = ledger.get("history", {}) or {}
        records = [UsageRecord.from_dict(k, v) for k, v in history.items()]
        current = next((r for r in records if r.month_key == key), UsageRecord(month_key=key))
        return UsageStats(
            current=current,
            total_chars=sum(r.chars_used for r in records),
            total_articles=sum(r.article_count for r in records),
            total_cost=round(sum(r.cost_estimate for r in records), 2),
            months_tracked=len(records),
        )

    def current_month_stats(self, month: Optional[str] = None) -> UsageStats:
        """Read the stats for a month (the current one by default)."""
        key = month or month_key(self._clock())
        return self._stats_from(self._ledger.read(), key)

    def record_usage(self, month: Optional[str], char_count: int) -> UsageStats:
        """
        Add billed characters and one article to a month.

        A char_count of 0 changes nothing and returns the current stats.

        Raises:
            ValueError: If char_count is negative.
            StorageError: If the conditional write keeps losing.
        """
        if char_count < 0:
            raise ValueError(f"char_count must be non-negative, got {char_count}")
        key = month or month_key(self._clock())
        if char_count == 0:
            return self.current_month_stats(key)

        cfg = self._config

        def _apply(ledger: Dict[str, Any]) -> UsageStats:
            history = ledger.setdefault("history", {})
            record = UsageRecord.from_dict(key, history.get(key, {}))
            record.chars_used += char_count
            record.article_count += 1
            record.cost_estimate = compute_cost(record.chars_used, cfg.free_tier_chars, cfg.rate_per_million)
            history[key] = record.to_dict()
            return self._stats_from(ledger, key)

        stats = self._ledger.update(_apply)
        info(_LOG, "usage_recorded", month=key, chars=char_count,
             month_chars=stats.current.chars_used, cost=stats.current.cost_estimate)
        return stats

    def log_processing_event(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Append a timestamped event, keeping the newest max_events."""
        event = {"timestamp": self._clock().isoformat(), **data}
        limit = self._config.max_events

        def _apply(log: Dict[str, Any]) -> None:
            events = log.setdefault("events", [])
            events.append(event)
            if len(events) > limit:
                del events[: len(events) - limit]

        self._events.update(_apply)
        verbose(_LOG, "processing_event_logged", title=data.get("title"))
        return event

    def recent_events(self, limit: int = 50) -> List[Dict[str, Any]]:
        """The newest events, newest first."""
        events = self._events.read().get("events", [])
        if limit <= 0:
            return []
        return list(reversed(events[-limit:]))
