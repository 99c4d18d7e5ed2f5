from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Callable

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from attendme.db.errors import remote_call
from attendme.models.student_aggregate import StudentAggregate
from attendme.schemas.watchlist import CachedWatchlist, WatchlistStudent
from attendme.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

WATCHLIST_KEY_PREFIX = "@attend_me/watchlist"


def class_key(dept: str, year: int, section: str) -> str:
    return f"{dept}-{year}-{section}"


def format_cache_age(cached_at: datetime | None, *, now: datetime | None = None) -> str:
    if cached_at is None:
        return "Never synced"
    current = now or datetime.now(timezone.utc)
    if cached_at.tzinfo is None:
        cached_at = cached_at.replace(tzinfo=timezone.utc)
    minutes = int((current - cached_at).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


class WatchlistCache:
    """Critical-student list per class, kept in the local store for offline use."""

    def __init__(
        self,
        session_factory: sessionmaker,
        store: KeyValueStore,
        *,
        default_threshold: float = 75.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._store = store
        self._default_threshold = default_threshold
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def _storage_key(dept: str, year: int, section: str) -> str:
        return f"{WATCHLIST_KEY_PREFIX}/{class_key(dept, year, section)}"

    def fetch_watchlist(
        self,
        dept: str,
        year: int,
        section: str,
        threshold: float | None = None,
    ) -> list[WatchlistStudent]:
        limit = self._default_threshold if threshold is None else threshold
        with remote_call("fetch watchlist"), self._session_factory() as db:
            rows = db.execute(
                select(StudentAggregate)
                .where(
                    StudentAggregate.dept == dept,
                    StudentAggregate.year == year,
                    StudentAggregate.section == section,
                    StudentAggregate.attendance_percentage < limit,
                )
                .order_by(StudentAggregate.attendance_percentage.asc(), StudentAggregate.roll_no.asc())
            ).scalars()
            students = [WatchlistStudent.model_validate(row) for row in rows]

        snapshot = CachedWatchlist(
            class_key=class_key(dept, year, section),
            threshold=limit,
            students=students,
            cached_at=self._clock(),
        )
        self._store.set(self._storage_key(dept, year, section), snapshot.model_dump(mode="json"))
        logger.info("Cached %d watchlist student(s) for %s", len(students), snapshot.class_key)
        return students

    def cached_watchlist(self, dept: str, year: int, section: str) -> CachedWatchlist | None:
        raw = self._store.get(self._storage_key(dept, year, section))
        if raw is None:
            return None
        try:
            return CachedWatchlist.model_validate(raw)
        except PydanticValidationError:
            logger.warning("Discarding unreadable watchlist cache for %s", class_key(dept, year, section))
            return None

    def is_stale(self, dept: str, year: int, section: str, max_age_hours: float = 24) -> bool:
        cached = self.cached_watchlist(dept, year, section)
        if cached is None:
            return True
        cached_at = cached.cached_at
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=timezone.utc)
        return self._clock() - cached_at > timedelta(hours=max_age_hours)

    def cache_age_label(self, dept: str, year: int, section: str) -> str:
        cached = self.cached_watchlist(dept, year, section)
        return format_cache_age(cached.cached_at if cached else None, now=self._clock())

    def clear(self, dept: str, year: int, section: str) -> None:
        self._store.delete(self._storage_key(dept, year, section))
