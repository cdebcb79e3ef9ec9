"""Utility helpers for FOMO."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def clean_id(value: object) -> str:
    """Return a stripped string id, or an empty string for missing values."""

    if value is None:
        return ""
    return str(value).strip()


class MonotonicClock:
    """Hand out naive UTC timestamps that strictly increase within a process.

    History entries are resolved by their timestamp, so two appends issued in
    the same microsecond must still be ordered.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: datetime | None = None

    def now(self) -> datetime:
        with self._lock:
            current = utcnow()
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


history_clock = MonotonicClock()
