"""Friendship canonicalization.

For any unordered pair of users exactly one friendship row exists. Its id is
``friendship_{from}_{to}`` of whichever direction was created first, and that
direction is kept for the lifetime of the row.

A striped in-process lock serializes upserts of the same pair; across sessions
and processes the UNIQUE ``pair_key`` column is what makes the insert
conditional.
"""

from __future__ import annotations

import logging
import threading
import zlib
from dataclasses import dataclass
from typing import Iterable, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import NotFoundError, ValidationError
from .models import Friendship, FriendshipStatus, User
from .utils import clean_id, utcnow

logger = logging.getLogger("uvicorn.error")

# Fixed stripe: pairs share locks by hash, so memory stays bounded.
LOCK_STRIPES = 64
_pair_locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))


@dataclass(frozen=True)
class UpsertResult:
    id: str
    action: str
    friendship: Friendship


def friendship_id(from_user_id: str, to_user_id: str) -> str:
    return f"friendship_{from_user_id}_{to_user_id}"


def pair_key(user_a: str, user_b: str) -> str:
    first, second = sorted((user_a, user_b))
    return f"{first}|{second}"


def _lock_for(key: str) -> threading.Lock:
    return _pair_locks[zlib.crc32(key.encode("utf-8")) % LOCK_STRIPES]


def _find_pair(session: Session, user_a: str, user_b: str) -> Friendship | None:
    candidates = (friendship_id(user_a, user_b), friendship_id(user_b, user_a))
    stmt = select(Friendship).where(
        or_(
            Friendship.id.in_(candidates),
            Friendship.pair_key == pair_key(user_a, user_b),
        )
    )
    return session.scalars(stmt).first()


def _overwrite(friendship: Friendship, status: FriendshipStatus) -> None:
    friendship.status = status.value
    friendship.modified_at = utcnow()
    friendship.deleted_at = None


def refresh_friends_count(session: Session, *user_ids: str) -> None:
    """Recount active friendships for the given users that have a profile."""
    for user_id in user_ids:
        user = session.get(User, user_id)
        if user is None:
            continue
        stmt = select(func.count(Friendship.id)).where(
            Friendship.deleted_at.is_(None),
            Friendship.status == FriendshipStatus.ACTIVE.value,
            or_(Friendship.from_user_id == user_id, Friendship.to_user_id == user_id),
        )
        user.friends_count = session.scalar(stmt) or 0
    session.flush()


def upsert_friendship(
    session: Session,
    from_user_id: str,
    to_user_id: str,
    status: FriendshipStatus | str,
) -> UpsertResult:
    """Create or update the single friendship row for a pair of users.

    An existing row in either direction keeps its id, direction and
    ``created_at``; only status and ``modified_at`` change, and a soft-deleted
    row is revived.
    """
    from_user_id = clean_id(from_user_id)
    to_user_id = clean_id(to_user_id)
    if not from_user_id or not to_user_id or not status:
        raise ValidationError("from_user_id, to_user_id and status are required")
    if from_user_id == to_user_id:
        raise ValidationError("A user cannot befriend themselves")
    status_value = FriendshipStatus.parse(status)
    key = pair_key(from_user_id, to_user_id)

    with _lock_for(key):
        existing = _find_pair(session, from_user_id, to_user_id)
        if existing is not None:
            _overwrite(existing, status_value)
            session.flush()
            refresh_friends_count(session, existing.from_user_id, existing.to_user_id)
            logger.info("Friendship %s updated to %s", existing.id, status_value.value)
            return UpsertResult(id=existing.id, action="updated", friendship=existing)

        now = utcnow()
        friendship = Friendship(
            id=friendship_id(from_user_id, to_user_id),
            pair_key=key,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            status=status_value.value,
            created_at=now,
            modified_at=now,
        )
        try:
            with session.begin_nested():
                session.add(friendship)
                session.flush()
        except IntegrityError:
            # Another writer inserted the pair first; update its row instead.
            existing = _find_pair(session, from_user_id, to_user_id)
            if existing is None:
                raise
            _overwrite(existing, status_value)
            session.flush()
            refresh_friends_count(session, existing.from_user_id, existing.to_user_id)
            logger.info("Friendship %s updated to %s", existing.id, status_value.value)
            return UpsertResult(id=existing.id, action="updated", friendship=existing)

        refresh_friends_count(session, from_user_id, to_user_id)
        logger.info("Friendship %s created as %s", friendship.id, status_value.value)
        return UpsertResult(id=friendship.id, action="created", friendship=friendship)


def get_friendship(session: Session, friendship_id_value: str) -> Friendship:
    friendship_id_value = clean_id(friendship_id_value)
    if not friendship_id_value:
        raise ValidationError("friendship id is required")
    friendship = session.get(Friendship, friendship_id_value)
    if friendship is None:
        raise NotFoundError(f"Friendship {friendship_id_value} not found")
    return friendship


def delete_friendship(session: Session, friendship_id_value: str) -> Friendship:
    """Soft delete: the row stays, marked deleted and cancelled."""
    friendship = get_friendship(session, friendship_id_value)
    now = utcnow()
    friendship.deleted_at = now
    friendship.modified_at = now
    friendship.status = FriendshipStatus.CANCELLED.value
    session.flush()
    refresh_friends_count(session, friendship.from_user_id, friendship.to_user_id)
    return friendship


def active_friendships(
    session: Session, user_id: str | None = None
) -> Sequence[Friendship]:
    stmt = select(Friendship).where(Friendship.deleted_at.is_(None))
    if user_id:
        stmt = stmt.where(
            or_(Friendship.from_user_id == user_id, Friendship.to_user_id == user_id)
        )
    return session.scalars(stmt.order_by(Friendship.created_at)).all()


def _live(friendships: Iterable[Friendship]) -> list[Friendship]:
    return [f for f in friendships if f.deleted_at is None]


def _other(friendship: Friendship, user_id: str) -> str | None:
    if friendship.from_user_id == user_id:
        return friendship.to_user_id
    if friendship.to_user_id == user_id:
        return friendship.from_user_id
    return None


def friends_of(friendships: Iterable[Friendship], user_id: str) -> list[str]:
    """Ids of the users with an active friendship to ``user_id``."""
    friends: list[str] = []
    for friendship in _live(friendships):
        if friendship.status != FriendshipStatus.ACTIVE.value:
            continue
        other = _other(friendship, user_id)
        if other and other not in friends:
            friends.append(other)
    return friends


def group_friendships(
    friendships: Iterable[Friendship], user_id: str
) -> dict[str, list[str]]:
    groups: dict[str, list[str]] = {
        "active": [],
        "pending_received": [],
        "pending_sent": [],
        "blocked": [],
    }
    for friendship in _live(friendships):
        other = _other(friendship, user_id)
        if other is None:
            continue
        if friendship.status == FriendshipStatus.ACTIVE.value:
            groups["active"].append(other)
        elif friendship.status == FriendshipStatus.PENDING.value:
            if friendship.to_user_id == user_id:
                groups["pending_received"].append(other)
            else:
                groups["pending_sent"].append(other)
        elif friendship.status == FriendshipStatus.BLOCKED.value:
            groups["blocked"].append(other)
    return groups


def friendship_status_between(
    friendships: Iterable[Friendship], user_a: str, user_b: str
) -> str:
    """Status of the live friendship between two users, ``"none"`` if there is none."""
    key = pair_key(user_a, user_b)
    for friendship in _live(friendships):
        if pair_key(friendship.from_user_id, friendship.to_user_id) == key:
            return friendship.status
    return "none"
