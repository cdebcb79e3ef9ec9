from __future__ import annotations

from datetime import datetime

import pytest

from conftest import NOW, TIMEZONE, make_event
from fomo.errors import ValidationError
from fomo.filters import (
    Period,
    classify_period,
    filter_by_public,
    filter_by_tags,
    match_online,
    match_organizer,
    match_period,
    match_public,
    match_query,
    match_tags,
)


def test_public_and_private_partition_events():
    events = [
        make_event("a", is_public=True),
        make_event("b", is_public=False),
        make_event("c", is_public=1),
        make_event("d", is_public=0),
    ]
    public_ids = filter_by_public(events, True)
    private_ids = filter_by_public(events, False)
    assert public_ids == {"a", "c"}
    assert private_ids == {"b", "d"}
    assert public_ids.isdisjoint(private_ids)
    assert public_ids | private_ids == {e.id for e in events}
    for event in events:
        assert match_public(event, True) != match_public(event, False)


def test_online_and_organizer_matchers():
    event = make_event("a", is_online=False, organizer_id="org_1")
    assert match_online(event, None)
    assert match_online(event, False)
    assert not match_online(event, True)
    assert match_organizer(event, "org_1")
    assert match_organizer(event, "")
    assert not match_organizer(event, "org_2")


def test_query_matches_title_description_and_venue():
    event = make_event(
        "a",
        title="Jazz Night",
        description="Live quartet",
        venue_name="Le Duc des Lombards",
        venue_address="42 rue des Lombards, Paris",
    )
    assert match_query(event, "jazz")
    assert match_query(event, "QUARTET")
    assert match_query(event, "duc des")
    assert match_query(event, "rue des lombards")
    assert match_query(event, "   ")
    assert not match_query(event, "techno")


def test_query_tolerates_missing_fields():
    event = make_event("a", title="Brunch", description=None)
    assert not match_query(event, "quartet")


def test_tags_use_or_semantics_and_all_sentinel():
    music = make_event("a", tags=["Music", "outdoor"])
    food = make_event("b", tags=["food"])
    untagged = make_event("c", tags=None)

    assert match_tags(music, ["music"])
    assert match_tags(music, ["sport", "outdoor"])
    assert not match_tags(food, ["music", "sport"])
    for event in (music, food, untagged):
        assert match_tags(event, [])
        assert match_tags(event, ["all"])
        assert match_tags(event, ["music", "all"])
    assert filter_by_tags([music, food, untagged], ["food", "music"]) == {"a", "b"}


@pytest.mark.parametrize(
    ("start", "expected"),
    [
        (datetime(2024, 5, 15, 8, 0), Period.PAST),
        (datetime(2024, 5, 15, 9, 59, 59), Period.PAST),
        (datetime(2024, 5, 15, 20, 0), Period.TODAY),
        # 01:30 on the 16th in Paris, still the 15th in UTC.
        (datetime(2024, 5, 15, 23, 30), Period.TOMORROW),
        (datetime(2024, 5, 16, 12, 0), Period.TOMORROW),
        (datetime(2024, 5, 17, 12, 0), Period.THIS_WEEK),
        (datetime(2024, 5, 18, 12, 0), Period.THIS_WEEKEND),
        (datetime(2024, 5, 19, 12, 0), Period.THIS_WEEKEND),
        (datetime(2024, 5, 21, 12, 0), Period.NEXT_WEEK),
        (datetime(2024, 5, 29, 12, 0), Period.THIS_MONTH),
        (datetime(2024, 6, 10, 12, 0), Period.NEXT_MONTH),
        (datetime(2024, 8, 1, 12, 0), Period.LATER),
    ],
)
def test_classify_period_in_viewer_timezone(start, expected):
    assert classify_period(start, now=NOW, timezone=TIMEZONE) is expected


def test_classify_period_depends_on_timezone():
    start = datetime(2024, 5, 15, 23, 30)
    assert classify_period(start, now=NOW, timezone="UTC") is Period.TODAY
    assert classify_period(start, now=NOW, timezone=TIMEZONE) is Period.TOMORROW


def test_next_month_rolls_over_the_year():
    now = datetime(2024, 12, 10, 12, 0)
    start = datetime(2025, 1, 20, 12, 0)
    assert classify_period(start, now=now, timezone="UTC") is Period.NEXT_MONTH


def test_match_period_uses_primary_bucket():
    event = make_event("a", start_time=datetime(2024, 5, 17, 12, 0))
    assert match_period(event, "thisWeek", now=NOW, timezone=TIMEZONE)
    assert not match_period(event, "thisMonth", now=NOW, timezone=TIMEZONE)
    assert match_period(event, "all", now=NOW, timezone=TIMEZONE)
    assert match_period(event, None, now=NOW, timezone=TIMEZONE)


def test_unknown_period_and_timezone_are_rejected():
    event = make_event("a")
    with pytest.raises(ValidationError):
        match_period(event, "someday", now=NOW, timezone=TIMEZONE)
    with pytest.raises(ValidationError):
        classify_period(datetime(2024, 5, 20), now=NOW, timezone="Mars/Olympus")
