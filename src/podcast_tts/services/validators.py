"""
Input Validation for Episode Requests.

Validation runs before the cache gate so that bad input never takes a lock,
touches storage or reaches the billed synthesis service.

Validation Rules:
    - Text: Required, non-whitespace, max pipeline.max_text_length characters
    - Title: Required, max 300 characters
    - Source: Optional, max 2048 characters
    - Description: Optional, max 2000 characters

All failures raise InputError (code INVALID_INPUT) with the offending field
in details, so API and CLI callers can report it directly.

Usage:
    from podcast_tts.services.validators import validate_text, validate_title

    text = validate_text(request.text, max_length=50000)
    title = validate_title(request.title)
"""
from __future__ import annotations

from typing import Optional

from podcast_tts.core.errors import InputError

MAX_TITLE_CHARS = 300
MAX_SOURCE_CHARS = 2048
MAX_DESCRIPTION_CHARS = 2000


def validate_text(text: Optional[str], max_length: int = 50000) -> str:
    """
    Validate article text.

    Returns:
        The text stripped of surrounding whitespace.

    Raises:
        InputError: If text is missing, blank or too long.
    """
    if not text or not text.strip():
        raise InputError("Text is required", details={"field": "text"})

    text = text.strip()
    if len(text) > max_length:
        raise InputError(
            f"Text exceeds maximum length ({len(text)} > {max_length})",
            details={"field": "text", "length": len(text), "max_length": max_length},
        )
    return text


def validate_title(title: Optional[str], max_length: int = MAX_TITLE_CHARS) -> str:
    """Validate the episode title; returns it stripped."""
    if not title or not title.strip():
        raise InputError("Title is required", details={"field": "title"})

    title = title.strip()
    if len(title) > max_length:
        raise InputError(
            f"Title exceeds maximum length ({len(title)} > {max_length})",
            details={"field": "title", "length": len(title), "max_length": max_length},
        )
    return title


def validate_source(source: Optional[str], max_length: int = MAX_SOURCE_CHARS) -> Optional[str]:
    """Validate the optional source URL or id. Blank counts as absent."""
    if source is None or not source.strip():
        return None

    source = source.strip()
    if len(source) > max_length:
        raise InputError(
            f"Source exceeds maximum length ({len(source)} > {max_length})",
            details={"field": "source", "length": len(source), "max_length": max_length},
        )
    return source


def validate_description(description: Optional[str], max_length: int = MAX_DESCRIPTION_CHARS) -> Optional[str]:
    if description is None or not description.strip():
        return None

    description = description.strip()
    if len(description) > max_length:
        raise InputError(
            f"Description exceeds maximum length ({len(description)} > {max_length})",
            details={"field": "description", "length": len(description), "max_length": max_length},
        )
    return description
