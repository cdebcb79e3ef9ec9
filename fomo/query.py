"""Set-intersection query engine over events.

Each active dimension yields a set of matching event ids; the result is the
intersection of those sets. Only the response dimension is internally OR.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable

from . import config
from .filters import (
    Period,
    filter_by_organizer,
    filter_by_period,
    filter_by_query,
    filter_by_tags,
    match_online,
    match_public,
    wanted_tags,
)
from .models import ResponseValue
from .responses import latest_by_event, user_response_map
from .utils import utcnow

# Requested response value -> current values it accepts. ``None`` is "new".
RESPONSE_EXPANSION: dict[ResponseValue | None, frozenset] = {
    None: frozenset({None, ResponseValue.INVITED}),
    ResponseValue.GOING: frozenset({ResponseValue.GOING, ResponseValue.PARTICIPE}),
    ResponseValue.PARTICIPE: frozenset({ResponseValue.GOING, ResponseValue.PARTICIPE}),
    ResponseValue.INTERESTED: frozenset({ResponseValue.INTERESTED}),
    ResponseValue.MAYBE: frozenset({ResponseValue.MAYBE}),
    ResponseValue.NOT_INTERESTED: frozenset(
        {ResponseValue.NOT_INTERESTED, ResponseValue.NOT_THERE}
    ),
    ResponseValue.NOT_THERE: frozenset(
        {ResponseValue.NOT_INTERESTED, ResponseValue.NOT_THERE}
    ),
    ResponseValue.CLEARED: frozenset({ResponseValue.CLEARED, ResponseValue.SEEN}),
    ResponseValue.SEEN: frozenset({ResponseValue.SEEN}),
    ResponseValue.INVITED: frozenset({ResponseValue.INVITED}),
}


@dataclass(frozen=True)
class FilterState:
    """Filters and viewer context for one request.

    ``responses`` is ``None`` when the response dimension is inactive; inside
    the set, ``None`` requests events the viewer has not answered.
    ``is_public_mode`` and ``online`` set to ``None`` disable those filters.
    Past events are left out unless ``include_past_events`` is set (default
    from settings, off) or the period filter is ``past``.
    """

    search_query: str = ""
    period: Period = Period.ALL
    tags: tuple[str, ...] = ()
    organizer_id: str | None = None
    responses: frozenset | None = None
    include_past_events: bool = field(
        default_factory=lambda: config.settings.include_past_events
    )
    is_public_mode: bool | None = None
    online: bool | None = None
    current_user_id: str | None = None
    timezone: str = field(default_factory=lambda: config.settings.default_timezone)
    now: datetime = field(default_factory=utcnow)

    def without(self, dimension: str) -> "FilterState":
        """Copy of this state with one filter dimension reset."""
        resets = {
            "search_query": {"search_query": ""},
            "period": {"period": Period.ALL},
            "tags": {"tags": ()},
            "organizer": {"organizer_id": None},
            "responses": {"responses": None},
        }
        return replace(self, **resets[dimension])


def accepted_responses(requested: Iterable) -> frozenset:
    accepted: set = set()
    for value in requested:
        accepted |= RESPONSE_EXPANSION[ResponseValue.parse(value)]
    return frozenset(accepted)


def intersect_ids(*id_sets: set[str] | None) -> set[str]:
    """Intersection of the given sets; ``None`` marks an inactive dimension."""
    active = [ids for ids in id_sets if ids is not None]
    if not active:
        return set()
    result = set(active[0])
    for ids in active[1:]:
        result &= ids
    return result


def base_events(events: Iterable, state: FilterState, entries: Iterable = ()) -> list:
    """Live events visible under the state's privacy mode and online flag.

    In private mode only the events the viewer has responded to are kept.
    """
    visible = [
        event
        for event in events
        if getattr(event, "deleted_at", None) is None
        and match_public(event, state.is_public_mode)
        and match_online(event, state.online)
    ]
    if state.is_public_mode is False:
        answered = latest_by_event(entries, state.current_user_id) if state.current_user_id else {}
        visible = [event for event in visible if event.id in answered]
    return visible


def filter_by_response(
    events: Iterable, requested: Iterable, response_map: dict
) -> set[str]:
    accepted = accepted_responses(requested)
    return {event.id for event in events if response_map.get(event.id) in accepted}


def apply_filters(events: Iterable, state: FilterState, entries: Iterable = ()) -> list:
    """Events matching every active dimension, in input order."""
    entries = list(entries)
    candidates = base_events(events, state, entries)
    if not candidates:
        return []

    query_ids = filter_by_query(candidates, state.search_query)
    organizer_ids = (
        filter_by_organizer(candidates, state.organizer_id) if state.organizer_id else None
    )
    tag_ids = filter_by_tags(candidates, state.tags) if wanted_tags(state.tags) else None
    period = Period.parse(state.period)
    period_ids = (
        filter_by_period(candidates, period, now=state.now, timezone=state.timezone)
        if period is not Period.ALL
        else None
    )
    response_ids = None
    if state.responses is not None:
        response_map = user_response_map(candidates, entries, state.current_user_id)
        response_ids = filter_by_response(candidates, state.responses, response_map)

    matched = intersect_ids(query_ids, organizer_ids, tag_ids, period_ids, response_ids)

    if not state.include_past_events and period is not Period.PAST:
        matched -= filter_by_period(
            candidates, Period.PAST, now=state.now, timezone=state.timezone
        )

    return [event for event in candidates if event.id in matched]


def get_map_filter_ids(
    events: Iterable, state: FilterState, entries: Iterable = ()
) -> list[str]:
    return [event.id for event in apply_filters(events, state, entries)]
