from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fomo import utils
from fomo.utils import MonotonicClock, clean_id, normalize_email, to_naive_utc


def test_to_naive_utc_converts_aware_values():
    aware = datetime(2024, 5, 15, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_naive_utc(aware) == datetime(2024, 5, 15, 10, 0)
    naive = datetime(2024, 5, 15, 12, 0)
    assert to_naive_utc(naive) is naive
    assert to_naive_utc(None) is None


def test_normalize_email_and_clean_id():
    assert normalize_email("  Someone@Example.COM ") == "someone@example.com"
    assert normalize_email(None) == ""
    assert clean_id("  abc ") == "abc"
    assert clean_id(42) == "42"
    assert clean_id(None) == ""


def test_utcnow_is_naive():
    assert utils.utcnow().tzinfo is None


def test_monotonic_clock_never_repeats(monkeypatch):
    frozen = datetime(2024, 5, 15, 10, 0)
    monkeypatch.setattr(utils, "utcnow", lambda: frozen)
    clock = MonotonicClock()

    stamps = [clock.now() for _ in range(3)]

    assert stamps == [
        frozen,
        frozen + timedelta(microseconds=1),
        frozen + timedelta(microseconds=2),
    ]


def test_monotonic_clock_survives_wall_clock_going_back(monkeypatch):
    times = iter([datetime(2024, 5, 15, 10, 0), datetime(2024, 5, 15, 9, 0)])
    monkeypatch.setattr(utils, "utcnow", lambda: next(times))
    clock = MonotonicClock()

    first = clock.now()
    second = clock.now()

    assert second > first
