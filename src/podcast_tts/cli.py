"""
Command-Line Interface for podcast-tts.

Produces episodes without running the HTTP server, and exposes the
maintenance operations (usage report, retention, removal).

Usage Examples:
    # Produce an episode from a file
    podcast-tts --file article.txt --title "My Article" --source https://example.com/a

    # Positional text
    podcast-tts "Short article text." --title "Short"

    # Dry-run mode (no service calls, shows the chunk plan)
    podcast-tts --file article.txt --title "My Article" --dry-run --json

    # Usage ledger for the current month
    podcast-tts --usage

    # Keep the newest 50 episodes, drop anything older than 90 days
    podcast-tts --retention --max-episodes 50 --max-age-days 90

    # Remove specific items (index entry and audio)
    podcast-tts --remove https://example.com/a https://example.com/b

Environment Variables:
    PODCAST_TTS_SETTINGS: Settings file (default config/settings.yaml)
    USE_CLOUD_STORAGE / GCS_BUCKET_NAME: Switch storage to a GCS bucket
    PODCAST_TTS_VOICE_SEED: Seed voice selection
    GOOGLE_APPLICATION_CREDENTIALS: Credentials for the Google clients
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from podcast_tts.core.config import ServiceConfig, Settings, load_settings
from podcast_tts.core.errors import PodcastError
from podcast_tts.core.logging import configure_logging, get_logger, info, set_request_id
from podcast_tts.services.podcast_service import (
    EpisodeRequest,
    PodcastService,
    derive_artifact_key,
    derive_item_key,
)
from podcast_tts.services.retention import apply_retention_policy, remove_items
from podcast_tts.tts.chunker import chunk_text
from podcast_tts.utils.text import estimate_audio_duration, slugify


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="podcast-tts CLI (article to episode)")

    # Input options
    parser.add_argument("text_pos", nargs="?", help="Article text (positional)")
    parser.add_argument("--text", help="Article text")
    parser.add_argument("--file", help="Read the article text from a file")
    parser.add_argument("--title", help="Episode title")
    parser.add_argument("--source", help="Canonical URL or id of the article")
    parser.add_argument("--description", help="Optional episode summary")

    parser.add_argument("--settings", help="Settings file (default: $PODCAST_TTS_SETTINGS or config/settings.yaml)")

    # Execution modes
    parser.add_argument("--dry-run", action="store_true",
                        help="Show the chunk plan (or what maintenance would remove) without changes")
    parser.add_argument("--json", action="store_true", help="Print JSON summary")

    # Maintenance
    parser.add_argument("--usage", action="store_true", help="Show usage for the current month")
    parser.add_argument("--retention", action="store_true", help="Apply the retention policy")
    parser.add_argument("--max-episodes", type=int, help="Retention: episodes to keep")
    parser.add_argument("--max-age-days", type=float, help="Retention: maximum episode age in days")
    parser.add_argument("--keep-audio", action="store_true",
                        help="Retention/removal: keep audio files, only drop index entries")
    parser.add_argument("--remove", nargs="+", metavar="KEY", help="Remove specific items by key")

    return parser.parse_args(argv)


def _load_settings(path: Optional[str]) -> Settings:
    """Load settings; built-in defaults when the default file is absent."""
    explicit = path or os.getenv("PODCAST_TTS_SETTINGS")
    settings_path = explicit or "config/settings.yaml"
    if not explicit and not Path(settings_path).exists():
        return Settings(raw={})
    return load_settings(settings_path)


def _load_text(args: argparse.Namespace) -> str:
    """
    Resolve the article text from --file, --text or the positional argument.

    Raises:
        SystemExit: If no input was given or inputs conflict.
    """
    text = args.text or args.text_pos
    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        return Path(args.file).read_text(encoding="utf-8")
    if not text:
        raise SystemExit("Provide --text, --file or a positional text.")
    return text


def _emit(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def _dry_run_plan(text: str, args: argparse.Namespace, config: ServiceConfig) -> Dict[str, Any]:
    """Chunk plan and derived keys for a text, without any service calls."""
    title = (args.title or "").strip() or "untitled"
    item_key = derive_item_key(title, (args.source or "").strip() or None)
    cr = chunk_text(
        text,
        target_size=config.chunking.target_size,
        safety_factor=config.chunking.safety_factor,
        max_bytes=config.chunking.max_bytes,
    )
    return {
        "ok": True,
        "dry_run": True,
        "title": title,
        "slug": slugify(title),
        "item_key": item_key,
        "artifact_key": derive_artifact_key(config.storage.audio_prefix, title, item_key),
        "text_len": len(text),
        "safe_size": cr.safe_size,
        "chunks": len(cr.chunks),
        "chunk_sizes": [{"chars": len(c.text), "bytes": c.byte_length} for c in cr.chunks],
        "estimated_duration_s": estimate_audio_duration(text),
    }


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for pipeline or storage errors).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("podcast-tts.cli")
    rid = str(uuid4())[:12]
    set_request_id(rid)

    settings = _load_settings(args.settings)
    config = ServiceConfig.from_settings(settings)

    try:
        # Dry-run of a new episode needs no storage or credentials
        if args.dry_run and not (args.retention or args.remove or args.usage):
            payload = _dry_run_plan(_load_text(args), args, config)
            info(log, "dry_run", chunks=payload["chunks"], text_len=payload["text_len"])
            _emit(payload, args.json)
            print("DRY_RUN_OK")
            return 0

        service = PodcastService.from_settings(settings)

        if args.usage:
            stats = service.usage_stats()
            _emit({"ok": True, **stats.to_dict()}, args.json)
            return 0

        if args.retention:
            stats = apply_retention_policy(
                service.index,
                service.store,
                max_episodes=args.max_episodes,
                max_age_days=args.max_age_days,
                delete_audio=not args.keep_audio,
                dry_run=args.dry_run,
            )
            _emit({"ok": True, **stats.to_dict()}, args.json)
            return 0

        if args.remove:
            stats = remove_items(
                service.index,
                service.store,
                args.remove,
                delete_audio=not args.keep_audio,
                dry_run=args.dry_run,
            )
            _emit({"ok": True, **stats.to_dict()}, args.json)
            return 0

        result = service.create_episode(
            EpisodeRequest(
                text=_load_text(args),
                title=args.title or "",
                source=args.source,
                description=args.description,
            ),
            request_id=rid,
        )
        _emit(result.to_dict(), args.json)
        print("CLI_OK")
        return 0

    except PodcastError as e:
        _emit(e.to_dict(), args.json)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
