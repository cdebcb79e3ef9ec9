"""Facet counts and calendar grouping for discovery views."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Iterable, Mapping

from . import config
from .filters import CALENDAR_PERIODS, Period, classify_period
from .models import ResponseValue
from .query import FilterState, apply_filters
from .responses import RESPONSE_LABELS, user_response_map
from .tags import normalize_tags

# Current response -> facet bucket. Legacy synonyms fold into their canonical value.
RESPONSE_BUCKETS: dict[ResponseValue | None, ResponseValue | None] = {
    ResponseValue.GOING: ResponseValue.GOING,
    ResponseValue.PARTICIPE: ResponseValue.GOING,
    ResponseValue.INTERESTED: ResponseValue.INTERESTED,
    ResponseValue.MAYBE: ResponseValue.MAYBE,
    ResponseValue.NOT_INTERESTED: ResponseValue.NOT_INTERESTED,
    ResponseValue.NOT_THERE: ResponseValue.NOT_INTERESTED,
    ResponseValue.CLEARED: ResponseValue.CLEARED,
    ResponseValue.SEEN: ResponseValue.CLEARED,
    ResponseValue.INVITED: None,
    None: None,
}


@dataclass(frozen=True)
class Facet:
    value: Any
    label: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        value = self.value.value if hasattr(self.value, "value") else self.value
        return {"value": value, "label": self.label, "count": self.count}


@dataclass(frozen=True)
class PeriodGroup:
    key: Period
    label: str
    events: list


def _ranked(counts: dict, labels: Mapping, limit: int | None = None) -> list[Facet]:
    # sorted() is stable, so equal counts keep first-seen order.
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    facets = [
        Facet(value=value, label=labels.get(value, str(value)), count=count)
        for value, count in ordered
        if count > 0
    ]
    if limit is not None:
        facets = facets[:limit]
    return facets


def _count(keys: Iterable) -> dict:
    counts: dict = {}
    for key in keys:
        counts[key] = counts.get(key, 0) + 1
    return counts


def group_by_period(
    events: Iterable,
    *,
    now: datetime,
    timezone: str | None,
    include_past: bool = False,
) -> list[Facet]:
    counts = _count(
        classify_period(event.start_time, now=now, timezone=timezone) for event in events
    )
    counts.pop(Period.LATER, None)
    if not include_past:
        counts.pop(Period.PAST, None)
    return _ranked(counts, {period: period.label for period in Period})


def group_by_response(events: Iterable, response_map: Mapping) -> list[Facet]:
    counts = _count(RESPONSE_BUCKETS[response_map.get(event.id)] for event in events)
    return _ranked(counts, RESPONSE_LABELS)


def group_by_tag(events: Iterable, limit: int | None = None) -> list[Facet]:
    counts = _count(tag for event in events for tag in normalize_tags(event.tags or []))
    return _ranked(counts, {tag: tag for tag in counts}, limit)


def _user_names(users: Iterable | Mapping | None) -> dict[str, str]:
    if not users:
        return {}
    if isinstance(users, Mapping):
        users = users.values()
    return {user.id: user.name for user in users if getattr(user, "name", None)}


def group_by_organizer(
    events: Iterable, users: Iterable | Mapping | None = None, limit: int | None = None
) -> list[Facet]:
    """Organizer facets labelled with the user's name, or the raw id when unknown."""
    counts = _count(event.organizer_id for event in events if event.organizer_id)
    names = _user_names(users)
    labels = {organizer_id: names.get(organizer_id, organizer_id) for organizer_id in counts}
    return _ranked(counts, labels, limit)


def available_facets(
    events: Iterable,
    state: FilterState,
    entries: Iterable = (),
    users: Iterable | Mapping | None = None,
) -> dict[str, list[Facet]]:
    """Facets for each dimension, computed with that dimension's own filter lifted."""
    events = list(events)
    entries = list(entries)
    include_past = state.include_past_events or Period.parse(state.period) is Period.PAST

    period_state = replace(state.without("period"), include_past_events=include_past)
    period_events = apply_filters(events, period_state, entries)
    response_events = apply_filters(events, state.without("responses"), entries)
    organizer_events = apply_filters(events, state.without("organizer"), entries)
    tag_events = apply_filters(events, state.without("tags"), entries)

    return {
        "periods": group_by_period(
            period_events,
            now=state.now,
            timezone=state.timezone,
            include_past=include_past,
        ),
        "responses": group_by_response(
            response_events,
            user_response_map(response_events, entries, state.current_user_id),
        ),
        "organizers": group_by_organizer(
            organizer_events, users, limit=config.settings.organizer_facet_limit
        ),
        "tags": group_by_tag(tag_events, limit=config.settings.tag_facet_limit),
    }


def group_events_by_period(
    events: Iterable, *, now: datetime, timezone: str | None
) -> list[PeriodGroup]:
    """Calendar sections in display order; events outside every bucket are left out."""
    sections: dict[Period, list] = {}
    for event in events:
        period = classify_period(event.start_time, now=now, timezone=timezone)
        if period in CALENDAR_PERIODS:
            sections.setdefault(period, []).append(event)
    return [
        PeriodGroup(
            key=period,
            label=period.label,
            events=sorted(sections[period], key=lambda event: event.start_time),
        )
        for period in CALENDAR_PERIODS
        if period in sections
    ]
