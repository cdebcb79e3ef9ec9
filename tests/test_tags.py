from __future__ import annotations

from datetime import datetime

import pytest

from conftest import make_event
from fomo.errors import ValidationError
from fomo.tags import normalize_tags, popular_tags, search_tags, tag_usage


def test_normalize_tags_trims_lowercases_and_dedupes():
    assert normalize_tags(["  Music", "music ", "FOOD", "", None]) == ["music", "food"]


def test_normalize_tags_caps_at_ten():
    raw = [f"tag{i}" for i in range(15)]
    assert normalize_tags(raw) == raw[:10]
    assert normalize_tags(raw, limit=3) == raw[:3]


def test_normalize_tags_accepts_comma_separated_text():
    assert normalize_tags("jazz, Blues ,jazz") == ["jazz", "blues"]
    assert normalize_tags(None) == []


def test_tag_usage_counts_live_events_only():
    events = [
        make_event("a", tags=["music", "food"]),
        make_event("b", tags=["Food"]),
        make_event("c", tags=["food", "music"], deleted_at=datetime(2024, 1, 1)),
        make_event("d", tags=None),
    ]
    assert tag_usage(events) == [("food", 2), ("music", 1)]


def test_popular_and_search_tags():
    events = [
        make_event("a", tags=["music", "musical", "food"]),
        make_event("b", tags=["music"]),
    ]
    assert popular_tags(events, limit=1) == [("music", 2)]
    assert search_tags(events, "MUS") == [("music", 2), ("musical", 1)]
    with pytest.raises(ValidationError):
        search_tags(events, "  ")
