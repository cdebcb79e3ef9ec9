"""SQLAlchemy models for FOMO."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from .errors import ValidationError
from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class ResponseValue(str, enum.Enum):
    """Closed set of values a response history entry can carry.

    ``None`` stands for "no response" and is not a member.
    """

    GOING = "going"
    PARTICIPE = "participe"
    INTERESTED = "interested"
    MAYBE = "maybe"
    NOT_INTERESTED = "not_interested"
    NOT_THERE = "not_there"
    CLEARED = "cleared"
    SEEN = "seen"
    INVITED = "invited"

    @classmethod
    def parse(cls, raw: object) -> "ResponseValue | None":
        if raw is None or isinstance(raw, cls):
            return raw
        normalized = str(raw).strip().lower()
        if normalized in {"", "null", "none"}:
            return None
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValidationError(f"Invalid response value: {raw!r}") from exc


class FriendshipStatus(str, enum.Enum):
    ACTIVE = "active"
    PENDING = "pending"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, raw: object) -> "FriendshipStatus":
        if isinstance(raw, cls):
            return raw
        normalized = str(raw or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValidationError(f"Invalid friendship status: {raw!r}") from exc


class Event(Base):
    __tablename__ = "events"

    id = Column(String(64), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    venue_name = Column(String(255), nullable=True)
    venue_address = Column(String(255), nullable=True)
    venue_lat = Column(Float, nullable=True)
    venue_lng = Column(Float, nullable=True)
    organizer_id = Column(String(64), nullable=True, index=True)
    organizer_name = Column(String(120), nullable=True)
    is_public = Column(Boolean, default=True, nullable=False)
    is_online = Column(Boolean, default=True, nullable=False)
    tags = Column(JSON, default=list, nullable=False)
    cover_url = Column(String(512), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    modified_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)
    deleted_at = Column(DateTime, nullable=True)


class ResponseHistoryEntry(Base):
    """One appended change of a user's response to an event."""

    __tablename__ = "response_history"
    __table_args__ = (Index("ix_response_history_pair", "user_id", "event_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime, default=_now, nullable=False)
    user_id = Column(String(64), nullable=False)
    event_id = Column(String(64), nullable=False, index=True)
    invited_by_user_id = Column(String(64), nullable=True)
    initial_response = Column(String(32), nullable=True)
    final_response = Column(String(32), nullable=True)


class Friendship(Base):
    __tablename__ = "friendships"

    id = Column(String(160), primary_key=True)
    pair_key = Column(String(160), nullable=False, unique=True)
    from_user_id = Column(String(64), nullable=False)
    to_user_id = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default=FriendshipStatus.PENDING.value)
    created_at = Column(DateTime, default=_now, nullable=False)
    modified_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)
    deleted_at = Column(DateTime, nullable=True)


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    city = Column(String(120), nullable=True)
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)
    friends_count = Column(Integer, default=0, nullable=False)
    show_attendance_to_friends = Column(Boolean, default=True, nullable=False)
    is_public_profile = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_ambassador = Column(Boolean, default=False, nullable=False)
    allow_requests = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    modified_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)
    last_connection = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
