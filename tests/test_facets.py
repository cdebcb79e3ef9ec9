from __future__ import annotations

from datetime import datetime
from types import SimpleNamespace

from conftest import NOW, TIMEZONE, make_entry, make_event
from fomo.facets import (
    Facet,
    available_facets,
    group_by_organizer,
    group_by_period,
    group_by_response,
    group_by_tag,
    group_events_by_period,
)
from fomo.filters import Period
from fomo.models import ResponseValue
from fomo.query import FilterState

TODAY = datetime(2024, 5, 15, 18, 0)
TOMORROW = datetime(2024, 5, 16, 18, 0)
YESTERDAY = datetime(2024, 5, 14, 18, 0)
FAR_AWAY = datetime(2024, 9, 1, 18, 0)


def _values(facets):
    return [(facet.value, facet.count) for facet in facets]


def test_tag_facets_sorted_by_count_then_first_seen():
    events = [
        make_event("a", tags=["jazz", "food"]),
        make_event("b", tags=["food", "art"]),
        make_event("c", tags=["art", "sport"]),
        make_event("d", tags=["food"]),
    ]
    assert _values(group_by_tag(events)) == [
        ("food", 3),
        ("art", 2),
        ("jazz", 1),
        ("sport", 1),
    ]
    assert _values(group_by_tag(events, limit=2)) == [("food", 3), ("art", 2)]


def test_organizer_facets_use_names_with_raw_id_fallback():
    users = [SimpleNamespace(id="org_a", name="Ana")]
    events = [
        make_event("a", organizer_id="org_b"),
        make_event("b", organizer_id="org_a"),
        make_event("c", organizer_id="org_a"),
        make_event("d", organizer_id=None),
    ]
    facets = group_by_organizer(events, users)
    assert facets == [
        Facet(value="org_a", label="Ana", count=2),
        Facet(value="org_b", label="org_b", count=1),
    ]
    assert group_by_organizer(events, {"org_a": users[0]}, limit=1)[0].label == "Ana"


def test_period_facets_hide_past_unless_requested():
    events = [
        make_event("a", start_time=YESTERDAY),
        make_event("b", start_time=TODAY),
        make_event("c", start_time=TODAY),
        make_event("d", start_time=TOMORROW),
        make_event("e", start_time=FAR_AWAY),
    ]
    hidden = group_by_period(events, now=NOW, timezone=TIMEZONE)
    assert _values(hidden) == [(Period.TODAY, 2), (Period.TOMORROW, 1)]
    shown = group_by_period(events, now=NOW, timezone=TIMEZONE, include_past=True)
    assert _values(shown) == [(Period.TODAY, 2), (Period.PAST, 1), (Period.TOMORROW, 1)]
    assert shown[0].label == "Today"


def test_response_facets_fold_legacy_values():
    events = [make_event(str(i)) for i in range(6)]
    response_map = {
        "0": ResponseValue.PARTICIPE,
        "1": ResponseValue.GOING,
        "2": ResponseValue.INVITED,
        "3": None,
        "4": ResponseValue.SEEN,
    }
    facets = group_by_response(events, response_map)
    assert _values(facets) == [
        (None, 3),
        (ResponseValue.GOING, 2),
        (ResponseValue.CLEARED, 1),
    ]
    assert [facet.label for facet in facets] == ["New", "Going", "Not answered"]
    assert facets[0].to_dict() == {"value": None, "label": "New", "count": 3}


def test_available_facets_lift_their_own_dimension():
    events = [
        make_event("a", tags=["music"], start_time=TODAY, organizer_id="org_a"),
        make_event("b", tags=["food"], start_time=TODAY, organizer_id="org_b"),
        make_event("c", tags=["music"], start_time=TOMORROW, organizer_id="org_a"),
        make_event("d", tags=["music"], start_time=YESTERDAY, organizer_id="org_a"),
    ]
    entries = [make_entry("r1", "me", "a", "going", datetime(2024, 5, 1))]
    state = FilterState(
        tags=("music",),
        period=Period.TODAY,
        current_user_id="me",
        include_past_events=False,
        now=NOW,
        timezone=TIMEZONE,
    )

    facets = available_facets(events, state, entries)

    # Tag counts ignore the tag filter but keep the period filter.
    assert _values(facets["tags"]) == [("music", 1), ("food", 1)]
    # Period counts ignore the period filter but keep the tag filter.
    assert _values(facets["periods"]) == [(Period.TODAY, 1), (Period.TOMORROW, 1)]
    assert _values(facets["organizers"]) == [("org_a", 1)]
    assert _values(facets["responses"]) == [(ResponseValue.GOING, 1)]


def test_available_facets_show_past_for_past_period():
    events = [
        make_event("a", start_time=YESTERDAY),
        make_event("b", start_time=TODAY),
    ]
    state = FilterState(
        period=Period.PAST, include_past_events=False, now=NOW, timezone=TIMEZONE
    )
    facets = available_facets(events, state)
    assert _values(facets["periods"]) == [(Period.PAST, 1), (Period.TODAY, 1)]


def test_group_events_by_period_orders_sections_and_events():
    later_today = make_event("late", start_time=datetime(2024, 5, 15, 21, 0))
    events = [
        make_event("weekend", start_time=datetime(2024, 5, 18, 12, 0)),
        later_today,
        make_event("early", start_time=TODAY),
        make_event("past", start_time=YESTERDAY),
        make_event("far", start_time=FAR_AWAY),
    ]
    groups = group_events_by_period(events, now=NOW, timezone=TIMEZONE)
    assert [group.key for group in groups] == [
        Period.PAST,
        Period.TODAY,
        Period.THIS_WEEKEND,
    ]
    assert [event.id for event in groups[1].events] == ["early", "late"]
