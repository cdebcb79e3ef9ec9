"""CRUD helpers for events and users."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import ConflictError, NotFoundError, ValidationError
from .friendships import active_friendships, friendship_status_between
from .models import Event, Friendship, FriendshipStatus, ResponseValue, User
from .responses import group_entries_by_response, history_for, latest_by_user
from .tags import normalize_tags
from .utils import clean_id, normalize_email, to_naive_utc, utcnow

USER_SEARCH_MIN_LENGTH = 3


def _now() -> datetime:
    return utcnow()


def _require_text(value: str | None, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field_name} is required")
    return cleaned


def _normalize_times(
    start_time: datetime | None, end_time: datetime | None
) -> tuple[datetime, datetime | None]:
    if start_time is None:
        raise ValidationError("start_time is required")
    normalized_start = to_naive_utc(start_time)
    normalized_end = to_naive_utc(end_time)
    if normalized_end is not None and normalized_end < normalized_start:
        raise ValidationError("end_time must be after start_time")
    return normalized_start, normalized_end


def get_event(
    session: Session, event_id: str, *, include_deleted: bool = False
) -> Event:
    event = session.get(Event, clean_id(event_id))
    if event is None or (event.deleted_at is not None and not include_deleted):
        raise NotFoundError(f"Event {event_id} not found")
    return event


def list_events(session: Session, *, include_deleted: bool = False) -> Sequence[Event]:
    stmt = select(Event).order_by(Event.start_time.asc(), Event.id.asc())
    if not include_deleted:
        stmt = stmt.where(Event.deleted_at.is_(None))
    return session.scalars(stmt).all()


def create_event(
    session: Session,
    *,
    title: str,
    start_time: datetime,
    end_time: datetime | None = None,
    description: str | None = None,
    event_id: str | None = None,
    venue_name: str | None = None,
    venue_address: str | None = None,
    venue_lat: float | None = None,
    venue_lng: float | None = None,
    organizer_id: str | None = None,
    organizer_name: str | None = None,
    is_public: bool = True,
    is_online: bool = True,
    tags: list[str] | None = None,
    cover_url: str | None = None,
) -> Event:
    """Create and persist a new event."""
    event_id = clean_id(event_id) or str(uuid.uuid4())
    if session.get(Event, event_id) is not None:
        raise ConflictError(f"Event {event_id} already exists")
    normalized_start, normalized_end = _normalize_times(start_time, end_time)
    now = _now()
    event = Event(
        id=event_id,
        title=_require_text(title, "title"),
        description=description,
        start_time=normalized_start,
        end_time=normalized_end,
        venue_name=venue_name,
        venue_address=venue_address,
        venue_lat=venue_lat,
        venue_lng=venue_lng,
        organizer_id=clean_id(organizer_id) or None,
        organizer_name=organizer_name,
        is_public=bool(is_public),
        is_online=bool(is_online),
        tags=normalize_tags(tags or []),
        cover_url=cover_url,
        created_at=now,
        modified_at=now,
    )
    session.add(event)
    session.flush()
    return event


def update_event(
    session: Session,
    event: Event,
    *,
    title: str,
    start_time: datetime,
    end_time: datetime | None,
    description: str | None,
    venue_name: str | None,
    venue_address: str | None,
    venue_lat: float | None,
    venue_lng: float | None,
    organizer_id: str | None,
    organizer_name: str | None,
    is_public: bool,
    is_online: bool,
    tags: list[str] | None,
    cover_url: str | None,
) -> Event:
    """Overwrite every editable field of an event."""
    normalized_start, normalized_end = _normalize_times(start_time, end_time)
    event.title = _require_text(title, "title")
    event.description = description
    event.start_time = normalized_start
    event.end_time = normalized_end
    event.venue_name = venue_name
    event.venue_address = venue_address
    event.venue_lat = venue_lat
    event.venue_lng = venue_lng
    event.organizer_id = clean_id(organizer_id) or None
    event.organizer_name = organizer_name
    event.is_public = bool(is_public)
    event.is_online = bool(is_online)
    event.tags = normalize_tags(tags or [])
    event.cover_url = cover_url
    event.modified_at = _now()
    session.add(event)
    session.flush()
    return event


def delete_event(session: Session, event_id: str) -> Event:
    event = get_event(session, event_id)
    event.deleted_at = _now()
    event.modified_at = event.deleted_at
    session.flush()
    return event


def get_user(session: Session, user_id: str, *, include_deleted: bool = False) -> User:
    user = session.get(User, clean_id(user_id))
    if user is None or (user.deleted_at is not None and not include_deleted):
        raise NotFoundError(f"User {user_id} not found")
    return user


def get_user_by_email(session: Session, email: str) -> User:
    """Active, non-deleted user with this email (case-insensitive)."""
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationError("email is required")
    stmt = select(User).where(
        User.email == normalized,
        User.deleted_at.is_(None),
        User.is_active.is_(True),
    )
    user = session.scalars(stmt).first()
    if user is None:
        raise NotFoundError(f"User with email {normalized} not found")
    return user


def list_users(session: Session) -> Sequence[User]:
    stmt = select(User).where(User.deleted_at.is_(None)).order_by(User.name.asc())
    return session.scalars(stmt).all()


def _ensure_email_available(session: Session, email: str, user_id: str) -> None:
    owner = session.scalars(select(User).where(User.email == email)).first()
    if owner is not None and owner.id != user_id:
        raise ConflictError(f"Email {email} belongs to another user")


def create_user(
    session: Session,
    *,
    name: str,
    email: str,
    user_id: str | None = None,
    city: str | None = None,
    lat: float | None = None,
    lng: float | None = None,
    is_active: bool = True,
    is_public_profile: bool = False,
    is_ambassador: bool = False,
    allow_requests: bool = True,
    show_attendance_to_friends: bool = True,
    last_connection: datetime | None = None,
) -> User:
    """Register a user; the id and the email must both be unused."""
    user_id = clean_id(user_id) or f"user_{uuid.uuid4().hex[:12]}"
    normalized_email = normalize_email(email)
    if not normalized_email:
        raise ValidationError("email is required")
    if session.get(User, user_id) is not None:
        raise ConflictError(f"User {user_id} already exists")
    _ensure_email_available(session, normalized_email, user_id)
    now = _now()
    user = User(
        id=user_id,
        name=_require_text(name, "name"),
        email=normalized_email,
        city=city,
        lat=lat,
        lng=lng,
        is_active=bool(is_active),
        is_public_profile=bool(is_public_profile),
        is_ambassador=bool(is_ambassador),
        allow_requests=bool(allow_requests),
        show_attendance_to_friends=bool(show_attendance_to_friends),
        last_connection=to_naive_utc(last_connection),
        created_at=now,
        modified_at=now,
    )
    session.add(user)
    session.flush()
    return user


def update_user(
    session: Session,
    user: User,
    *,
    name: str,
    email: str,
    city: str | None,
    lat: float | None,
    lng: float | None,
    is_active: bool,
    is_public_profile: bool,
    is_ambassador: bool,
    allow_requests: bool,
    show_attendance_to_friends: bool,
    last_connection: datetime | None = None,
) -> User:
    """Overwrite a user's profile; ``last_connection`` is kept when not given."""
    normalized_email = normalize_email(email)
    if not normalized_email:
        raise ValidationError("email is required")
    _ensure_email_available(session, normalized_email, user.id)
    user.name = _require_text(name, "name")
    user.email = normalized_email
    user.city = city
    user.lat = lat
    user.lng = lng
    user.is_active = bool(is_active)
    user.is_public_profile = bool(is_public_profile)
    user.is_ambassador = bool(is_ambassador)
    user.allow_requests = bool(allow_requests)
    user.show_attendance_to_friends = bool(show_attendance_to_friends)
    if last_connection is not None:
        user.last_connection = to_naive_utc(last_connection)
    user.modified_at = _now()
    session.add(user)
    session.flush()
    return user


def delete_user(session: Session, user_id: str) -> User:
    user = get_user(session, user_id)
    user.deleted_at = _now()
    user.modified_at = user.deleted_at
    session.flush()
    return user


def search_users(
    session: Session, query: str | None, *, current_user_id: str | None
) -> list[tuple[User, str]]:
    """Active users open to requests whose name or email contains ``query``.

    Each match comes with its friendship status towards the current user.
    """
    needle = (query or "").strip().lower()
    if len(needle) < USER_SEARCH_MIN_LENGTH:
        return []
    current_user_id = clean_id(current_user_id)
    if not current_user_id:
        raise ValidationError("current_user_id is required")

    friendships = active_friendships(session, current_user_id)
    matches: list[tuple[User, str]] = []
    for user in list_users(session):
        if user.id == current_user_id or not user.is_active or not user.allow_requests:
            continue
        if needle not in (user.name or "").lower() and needle not in (user.email or "").lower():
            continue
        matches.append(
            (user, friendship_status_between(friendships, current_user_id, user.id))
        )
    return matches


def user_friends(
    session: Session, user_id: str, *, status: FriendshipStatus | str = FriendshipStatus.ACTIVE
) -> list[tuple[User, Friendship]]:
    """Active counterpart users of ``user_id`` with the friendship linking them."""
    status_value = FriendshipStatus.parse(status).value
    friends: list[tuple[User, Friendship]] = []
    for friendship in active_friendships(session, user_id):
        if friendship.status != status_value:
            continue
        other_id = (
            friendship.to_user_id
            if friendship.from_user_id == user_id
            else friendship.from_user_id
        )
        friend = session.get(User, other_id)
        if friend is None or friend.deleted_at is not None or not friend.is_active:
            continue
        friends.append((friend, friendship))
    return friends


def event_guests(
    session: Session, event_id: str, *, user_id: str
) -> dict[ResponseValue | None, list[tuple[User, object]]]:
    """Friends' current responses to an event, grouped by response.

    Friends who hide their attendance are left out.
    """
    get_event(session, event_id)
    friends = {
        friend.id: friend
        for friend, _ in user_friends(session, user_id)
        if friend.show_attendance_to_friends
    }
    latest = latest_by_user(history_for(session, event_id=event_id), event_id)
    visible = [entry for uid, entry in latest.items() if uid in friends]
    return {
        response: [(friends[entry.user_id], entry) for entry in entries]
        for response, entries in group_entries_by_response(visible).items()
    }
