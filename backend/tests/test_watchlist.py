from datetime import datetime, timedelta, timezone

import pytest

from attendme.models.student_aggregate import StudentAggregate
from attendme.services.watchlist import WatchlistCache, format_cache_age

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def seeded(session_factory):
    rows = [
        ("s1", "21CS001", "Asha", "CSE", 3, "A", 62.5),
        ("s2", "21CS002", "Bala", "CSE", 3, "A", 74.9),
        ("s3", "21CS003", "Chitra", "CSE", 3, "A", 75.0),
        ("s4", "21CS004", "Dev", "CSE", 3, "A", 40.0),
        ("s5", "21CS005", "Esha", "CSE", 3, "B", 10.0),
    ]
    with session_factory() as db, db.begin():
        for student_id, roll_no, name, dept, year, section, percentage in rows:
            db.add(
                StudentAggregate(
                    student_id=student_id,
                    roll_no=roll_no,
                    full_name=name,
                    dept=dept,
                    year=year,
                    section=section,
                    attendance_percentage=percentage,
                )
            )


@pytest.fixture()
def clock():
    return Clock(NOW)


@pytest.fixture()
def watchlist(session_factory, store, clock):
    return WatchlistCache(session_factory, store, clock=clock)


def test_fetch_returns_students_below_threshold_worst_first(watchlist, seeded):
    students = watchlist.fetch_watchlist("CSE", 3, "A")

    assert [item.student_id for item in students] == ["s4", "s1", "s2"]

    cached = watchlist.cached_watchlist("CSE", 3, "A")
    assert cached.class_key == "CSE-3-A"
    assert cached.threshold == 75.0
    assert cached.students == students


def test_custom_threshold(watchlist, seeded):
    students = watchlist.fetch_watchlist("CSE", 3, "A", threshold=50)
    assert [item.student_id for item in students] == ["s4"]


def test_cache_is_available_offline(watchlist, seeded, session_factory, store, clock):
    watchlist.fetch_watchlist("CSE", 3, "A")

    offline = WatchlistCache(session_factory, store, clock=clock)
    assert [item.roll_no for item in offline.cached_watchlist("CSE", 3, "A").students] == [
        "21CS004",
        "21CS001",
        "21CS002",
    ]
    assert offline.cached_watchlist("CSE", 3, "B") is None


def test_staleness_and_age_label(watchlist, seeded, clock):
    assert watchlist.is_stale("CSE", 3, "A")
    assert watchlist.cache_age_label("CSE", 3, "A") == "Never synced"

    watchlist.fetch_watchlist("CSE", 3, "A")
    assert not watchlist.is_stale("CSE", 3, "A")
    assert watchlist.cache_age_label("CSE", 3, "A") == "Just now"

    clock.now = NOW + timedelta(hours=25)
    assert watchlist.is_stale("CSE", 3, "A")
    assert not watchlist.is_stale("CSE", 3, "A", max_age_hours=48)
    assert watchlist.cache_age_label("CSE", 3, "A") == "1d ago"

    watchlist.clear("CSE", 3, "A")
    assert watchlist.cached_watchlist("CSE", 3, "A") is None


def test_unreadable_cache_is_ignored(watchlist, store):
    store.set("@attend_me/watchlist/CSE-3-A", {"students": "nope"})
    assert watchlist.cached_watchlist("CSE", 3, "A") is None


@pytest.mark.parametrize(
    ("age", "label"),
    [
        (timedelta(seconds=30), "Just now"),
        (timedelta(minutes=5), "5m ago"),
        (timedelta(hours=3, minutes=10), "3h ago"),
        (timedelta(days=2, hours=1), "2d ago"),
    ],
)
def test_format_cache_age(age, label):
    assert format_cache_age(NOW - age, now=NOW) == label


def test_format_cache_age_accepts_naive_timestamps():
    assert format_cache_age(datetime(2024, 3, 1, 11, 0), now=NOW) == "1h ago"
    assert format_cache_age(None) == "Never synced"
