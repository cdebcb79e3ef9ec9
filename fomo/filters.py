"""Predicates over events, one per filter dimension.

Every matcher has an id-set companion (``filter_by_*``) so the query engine
can combine dimensions by set intersection.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timedelta
from typing import Iterable

import pytz

from .errors import ValidationError
from .tags import ALL_TAGS, normalize_tag


class Period(str, enum.Enum):
    PAST = "past"
    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEK = "thisWeek"
    THIS_WEEKEND = "thisWeekend"
    NEXT_WEEK = "nextWeek"
    THIS_MONTH = "thisMonth"
    NEXT_MONTH = "nextMonth"
    LATER = "later"
    ALL = "all"

    @property
    def label(self) -> str:
        return PERIOD_LABELS[self]

    @classmethod
    def parse(cls, raw: object) -> "Period":
        if isinstance(raw, cls):
            return raw
        value = str(raw or "").strip()
        if not value:
            return cls.ALL
        try:
            return cls(value)
        except ValueError as exc:
            raise ValidationError(f"Invalid period: {raw!r}") from exc


PERIOD_LABELS = {
    Period.PAST: "Past",
    Period.TODAY: "Today",
    Period.TOMORROW: "Tomorrow",
    Period.THIS_WEEK: "This week",
    Period.THIS_WEEKEND: "This weekend",
    Period.NEXT_WEEK: "Next week",
    Period.THIS_MONTH: "This month",
    Period.NEXT_MONTH: "Next month",
    Period.LATER: "Later",
    Period.ALL: "All",
}

# Display order of calendar buckets; LATER and ALL are not calendar buckets.
CALENDAR_PERIODS = (
    Period.PAST,
    Period.TODAY,
    Period.TOMORROW,
    Period.THIS_WEEK,
    Period.THIS_WEEKEND,
    Period.NEXT_WEEK,
    Period.THIS_MONTH,
    Period.NEXT_MONTH,
)


def get_timezone(name: str | None):
    try:
        return pytz.timezone(name or "UTC")
    except pytz.UnknownTimeZoneError as exc:
        raise ValidationError(f"Unknown timezone: {name}") from exc


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


def _next_month(day: date) -> tuple[int, int]:
    if day.month == 12:
        return day.year + 1, 1
    return day.year, day.month + 1


def classify_period(start: datetime, *, now: datetime, timezone: str | None) -> Period:
    """Return the single primary bucket of a start time.

    Naive datetimes are read as UTC. Day, week and month boundaries are taken
    in ``timezone``; weeks start on Monday.
    """
    start_utc = _as_utc(start)
    now_utc = _as_utc(now)
    if start_utc < now_utc:
        return Period.PAST

    tz = get_timezone(timezone)
    start_day = start_utc.astimezone(tz).date()
    today = now_utc.astimezone(tz).date()

    if start_day == today:
        return Period.TODAY
    if start_day == today + timedelta(days=1):
        return Period.TOMORROW
    start_week = start_day.isocalendar()[:2]
    if start_week == today.isocalendar()[:2]:
        if start_day.weekday() >= 5:
            return Period.THIS_WEEKEND
        return Period.THIS_WEEK
    if start_week == (today + timedelta(days=7)).isocalendar()[:2]:
        return Period.NEXT_WEEK
    if (start_day.year, start_day.month) == (today.year, today.month):
        return Period.THIS_MONTH
    if (start_day.year, start_day.month) == _next_month(today):
        return Period.NEXT_MONTH
    return Period.LATER


def match_public(event, is_public_mode: bool | None) -> bool:
    if is_public_mode is None:
        return True
    return bool(event.is_public) == bool(is_public_mode)


def match_online(event, want_online: bool | None) -> bool:
    if want_online is None:
        return True
    return bool(event.is_online) == bool(want_online)


def match_organizer(event, organizer_id: str | None) -> bool:
    if not organizer_id:
        return True
    return event.organizer_id == organizer_id


def match_query(event, text: str | None) -> bool:
    needle = (text or "").strip().lower()
    if not needle:
        return True
    haystacks = (
        event.title,
        event.description,
        event.venue_name,
        event.venue_address,
    )
    return any(needle in (value or "").lower() for value in haystacks)


def wanted_tags(tags: Iterable[str] | None) -> set[str]:
    """Normalized requested tags; empty means the dimension is inactive."""
    if not tags:
        return set()
    wanted = {normalize_tag(tag) for tag in tags}
    wanted.discard("")
    if ALL_TAGS in wanted:
        return set()
    return wanted


def match_tags(event, tags: Iterable[str] | None) -> bool:
    wanted = wanted_tags(tags)
    if not wanted:
        return True
    event_tags = {normalize_tag(tag) for tag in (event.tags or [])}
    return not wanted.isdisjoint(event_tags)


def match_period(
    event,
    period: Period | str | None,
    *,
    now: datetime,
    timezone: str | None,
) -> bool:
    period = Period.parse(period)
    if period is Period.ALL:
        return True
    return classify_period(event.start_time, now=now, timezone=timezone) is period


def filter_by_query(events: Iterable, text: str | None) -> set[str]:
    return {event.id for event in events if match_query(event, text)}


def filter_by_organizer(events: Iterable, organizer_id: str | None) -> set[str]:
    return {event.id for event in events if match_organizer(event, organizer_id)}


def filter_by_tags(events: Iterable, tags: Iterable[str] | None) -> set[str]:
    tags = list(tags or [])
    return {event.id for event in events if match_tags(event, tags)}


def filter_by_period(
    events: Iterable,
    period: Period | str | None,
    *,
    now: datetime,
    timezone: str | None,
) -> set[str]:
    return {
        event.id
        for event in events
        if match_period(event, period, now=now, timezone=timezone)
    }


def filter_by_public(events: Iterable, is_public_mode: bool | None) -> set[str]:
    return {event.id for event in events if match_public(event, is_public_mode)}


def filter_by_online(events: Iterable, want_online: bool | None) -> set[str]:
    return {event.id for event in events if match_online(event, want_online)}
