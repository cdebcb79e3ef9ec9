"""Response history: append path and current-state resolution.

A user's response to an event is never stored as mutable state. Every change
appends a ``ResponseHistoryEntry``; the live value is the ``final_response`` of
the most recent entry for the (user, event) pair.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .errors import ValidationError
from .models import ResponseHistoryEntry, ResponseValue
from .utils import clean_id, history_clock

RESPONSE_LABELS = {
    ResponseValue.GOING: "Going",
    ResponseValue.PARTICIPE: "Going",
    ResponseValue.INTERESTED: "Interested",
    ResponseValue.MAYBE: "Maybe",
    ResponseValue.NOT_INTERESTED: "Not interested",
    ResponseValue.NOT_THERE: "Not interested",
    ResponseValue.CLEARED: "Not answered",
    ResponseValue.SEEN: "Not answered",
    ResponseValue.INVITED: "New",
    None: "New",
}


def _sort_key(entry) -> tuple:
    return (entry.created_at, str(entry.id or ""))


def _is_newer(candidate, current) -> bool:
    return _sort_key(candidate) > _sort_key(current)


def response_of(entry) -> ResponseValue | None:
    """Return the parsed final response of an entry (``None`` when absent)."""
    if entry is None:
        return None
    return ResponseValue.parse(entry.final_response)


def resolve_latest(entries: Iterable) -> dict[tuple[str, str], object]:
    """Fold history into the latest entry per (user_id, event_id).

    Single linear pass, no sorting. Ties on ``created_at`` go to the greatest
    entry id, so the outcome does not depend on input order.
    """
    latest: dict[tuple[str, str], object] = {}
    for entry in entries:
        key = (entry.user_id, entry.event_id)
        current = latest.get(key)
        if current is None or _is_newer(entry, current):
            latest[key] = entry
    return latest


def resolve_current_response(
    entries: Iterable, user_id: str, event_id: str
) -> ResponseValue | None:
    best = None
    for entry in entries:
        if entry.user_id != user_id or entry.event_id != event_id:
            continue
        if best is None or _is_newer(entry, best):
            best = entry
    return response_of(best)


def latest_by_event(entries: Iterable, user_id: str) -> dict[str, object]:
    """Latest entry per event for one user."""
    latest: dict[str, object] = {}
    for entry in entries:
        if entry.user_id != user_id:
            continue
        current = latest.get(entry.event_id)
        if current is None or _is_newer(entry, current):
            latest[entry.event_id] = entry
    return latest


def latest_by_user(entries: Iterable, event_id: str) -> dict[str, object]:
    """Latest entry per user for one event."""
    latest: dict[str, object] = {}
    for entry in entries:
        if entry.event_id != event_id:
            continue
        current = latest.get(entry.user_id)
        if current is None or _is_newer(entry, current):
            latest[entry.user_id] = entry
    return latest


def user_response_map(
    events: Iterable, entries: Iterable, user_id: str | None
) -> dict[str, ResponseValue | None]:
    """Map every event id to the user's current response, ``None`` if unanswered."""
    latest = latest_by_event(entries, user_id) if user_id else {}
    return {event.id: response_of(latest.get(event.id)) for event in events}


def group_entries_by_response(
    entries: Iterable,
) -> dict[ResponseValue | None, list]:
    """Group already-resolved entries by their final response, keeping order."""
    grouped: dict[ResponseValue | None, list] = defaultdict(list)
    for entry in entries:
        grouped[response_of(entry)].append(entry)
    return dict(grouped)


def history_for(
    session: Session,
    *,
    user_id: str | None = None,
    event_id: str | None = None,
) -> Sequence[ResponseHistoryEntry]:
    stmt = select(ResponseHistoryEntry)
    if user_id:
        stmt = stmt.where(ResponseHistoryEntry.user_id == user_id)
    if event_id:
        stmt = stmt.where(ResponseHistoryEntry.event_id == event_id)
    stmt = stmt.order_by(ResponseHistoryEntry.created_at, ResponseHistoryEntry.id)
    return session.scalars(stmt).all()


def current_response(
    session: Session, *, user_id: str, event_id: str
) -> ResponseValue | None:
    entries = history_for(session, user_id=user_id, event_id=event_id)
    return resolve_current_response(entries, user_id, event_id)


def append_response(
    session: Session,
    *,
    user_id: str,
    event_id: str,
    response: ResponseValue | str | None,
    invited_by_user_id: str | None = None,
    initial_response: ResponseValue | str | None = ...,
) -> ResponseHistoryEntry:
    """Append one history entry; existing entries are never touched.

    ``initial_response`` defaults to the pair's current response.
    """
    user_id = clean_id(user_id)
    event_id = clean_id(event_id)
    if not user_id or not event_id:
        raise ValidationError("user_id and event_id are required")
    final_value = ResponseValue.parse(response)
    if initial_response is ...:
        initial_value = current_response(session, user_id=user_id, event_id=event_id)
    else:
        initial_value = ResponseValue.parse(initial_response)

    entry = ResponseHistoryEntry(
        user_id=user_id,
        event_id=event_id,
        invited_by_user_id=clean_id(invited_by_user_id) or None,
        initial_response=initial_value.value if initial_value else None,
        final_response=final_value.value if final_value else None,
        created_at=history_clock.now(),
    )
    session.add(entry)
    session.flush()
    return entry


def migrate_responses(session: Session, old_user_id: str, new_user_id: str) -> int:
    """Move every entry of ``old_user_id`` to ``new_user_id``.

    Used when a visitor account becomes a registered user.
    """
    old_user_id = clean_id(old_user_id)
    new_user_id = clean_id(new_user_id)
    if not old_user_id or not new_user_id:
        raise ValidationError("old_user_id and new_user_id are required")
    if old_user_id == new_user_id:
        raise ValidationError("old_user_id and new_user_id must differ")
    result = session.execute(
        update(ResponseHistoryEntry)
        .where(ResponseHistoryEntry.user_id == old_user_id)
        .values(user_id=new_user_id)
        .execution_options(synchronize_session="fetch")
    )
    session.flush()
    return result.rowcount or 0
