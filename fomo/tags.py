"""Tag normalization and the derived tag usage aggregate."""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from . import config
from .errors import ValidationError

ALL_TAGS = "all"


def normalize_tag(value: object) -> str:
    return str(value or "").strip().lower()


def normalize_tags(raw: Iterable[object] | str | None, limit: int | None = None) -> list[str]:
    """Trim, lower-case and deduplicate tags, keeping the first ``limit``.

    A comma separated string is accepted as well as a list.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    limit = config.settings.max_tags_per_event if limit is None else limit
    tags: list[str] = []
    for item in raw:
        tag = normalize_tag(item)
        if tag and tag not in tags:
            tags.append(tag)
        if len(tags) >= limit:
            break
    return tags


def _live(events: Iterable) -> list:
    return [event for event in events if getattr(event, "deleted_at", None) is None]


def tag_usage(events: Iterable) -> list[tuple[str, int]]:
    """Usage count of each tag across live events, most used first.

    Ties keep the order in which tags were first seen.
    """
    counts: Counter[str] = Counter()
    for event in _live(events):
        for tag in normalize_tags(event.tags or []):
            counts[tag] += 1
    return counts.most_common()


def popular_tags(events: Iterable, limit: int | None = None) -> list[tuple[str, int]]:
    limit = config.settings.popular_tags_limit if limit is None else limit
    return tag_usage(events)[:limit]


def search_tags(
    events: Iterable, query: str | None, limit: int | None = None
) -> list[tuple[str, int]]:
    needle = normalize_tag(query)
    if not needle:
        raise ValidationError("Search query is required")
    limit = config.settings.popular_tags_limit if limit is None else limit
    matches = [(tag, count) for tag, count in tag_usage(events) if needle in tag]
    return matches[:limit]
