"""General helper functions for the translation engine."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

# Separator between title and body in the text sent to the provider
TITLE_BODY_SEPARATOR = "\n\n"

LANGUAGE_NAMES = {
    "en": "English",
    "ms": "Malay",
    "zh": "Chinese",
    "ta": "Tamil",
    "hi": "Hindi",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
    "ko": "Korean",
}


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def language_label(code: str) -> str:
    """Render a language code for prompts, e.g. ``ms`` -> ``Malay (ms)``."""
    name = LANGUAGE_NAMES.get((code or "").lower())
    if name is None:
        return code
    return f"{name} ({code})"


def chunk_items(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive chunks of at most ``size`` elements.

    Args:
        items: Ordered items to partition.
        size: Maximum chunk length (>= 1).

    Returns:
        Chunks in input order; the last one may be shorter.
    """

    if size < 1:
        raise ValueError(f"Chunk size must be >= 1, got {size}")
    item_list = list(items)
    return [item_list[start : start + size] for start in range(0, len(item_list), size)]


def combine_item_text(title: str, content: str) -> str:
    """Build the single text unit sent to the provider for one item."""
    return f"{title or ''}{TITLE_BODY_SEPARATOR}{content or ''}"


def split_title_body(translated_text: str) -> Tuple[str, str]:
    """Split a translated item back into ``(title, body)``.

    The first blank-line separated segment is the title; the remaining
    segments joined back together are the body. When there is nothing after
    the title, the whole translated text is used as body.

    Note: titles that themselves contain a blank line are split in the wrong
    place. Kept as-is for compatibility with already stored translations.
    """

    parts = translated_text.split(TITLE_BODY_SEPARATOR)
    title = parts[0] if parts else ""
    body = TITLE_BODY_SEPARATOR.join(parts[1:])
    return title, body or translated_text


def clean_translated_text(text: str) -> str:
    """Strip code fences a model may wrap around its answer and trim whitespace."""

    cleaned = (text or "").strip()

    if cleaned.startswith("```"):
        newline = cleaned.find("\n")
        cleaned = cleaned[newline + 1 :] if newline != -1 else ""
        if cleaned.endswith("```"):
            cleaned = cleaned[:-3]
    elif cleaned.endswith("\n```"):
        cleaned = cleaned[:-4]

    return cleaned.strip()


def progress_percent(processed: int, total: int) -> int:
    """Integer completion percentage, rounding halves up."""
    if total <= 0:
        return 0
    return int(math.floor(processed / total * 100 + 0.5))
