"""
In-memory tracking store.

Used by component tests and by short-lived tools that do not need a
database file. A single re-entrant lock is held for the lifetime of a
unit of work, which gives the same all-or-nothing visibility as the
SQLite store's BEGIN IMMEDIATE transactions.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import uuid4

from privacymetrics.core.entities import (
    DailyRollup,
    DeviceType,
    Event,
    Session,
    Visitor,
    Website,
)


@dataclass
class _State:
    websites: dict[str, Website] = field(default_factory=dict)
    visitors: dict[tuple[str, str], Visitor] = field(default_factory=dict)
    sessions: dict[tuple[str, str], Session] = field(default_factory=dict)
    events: list[Event] = field(default_factory=list)
    rollups: dict[tuple[str, date], DailyRollup] = field(default_factory=dict)


class InMemoryWebsiteRepo:
    def __init__(self, state: _State) -> None:
        self._state = state

    def get_by_tracking_code(self, tracking_code: str) -> Website | None:
        for website in self._state.websites.values():
            if website.tracking_code == tracking_code and website.is_active:
                return website
        return None

    def get_by_id(self, website_id: str) -> Website | None:
        return self._state.websites.get(website_id)

    def save(self, website: Website) -> Website:
        self._state.websites[website.id] = website
        return website


class InMemoryVisitorRepo:
    def __init__(self, state: _State) -> None:
        self._state = state

    def upsert(
        self,
        website_id: str,
        fingerprint: str,
        seen_at: datetime,
        page_view_increment: int,
        country: str | None = None,
        region: str | None = None,
        language: str | None = None,
    ) -> Visitor:
        key = (website_id, fingerprint)
        existing = self._state.visitors.get(key)
        if existing is None:
            visitor = Visitor(
                id=uuid4().hex,
                website_id=website_id,
                fingerprint=fingerprint,
                first_seen=seen_at,
                last_seen=seen_at,
                page_views=page_view_increment,
                country=country,
                region=region,
                language=language,
            )
        else:
            visitor = existing.model_copy(
                update={
                    "first_seen": min(existing.first_seen, seen_at),
                    "last_seen": max(existing.last_seen, seen_at),
                    "page_views": existing.page_views + page_view_increment,
                    "country": existing.country or country,
                    "region": existing.region or region,
                    "language": existing.language or language,
                }
            )
        self._state.visitors[key] = visitor
        return visitor

    def get(self, website_id: str, fingerprint: str) -> Visitor | None:
        return self._state.visitors.get((website_id, fingerprint))

    def list_by_website(self, website_id: str) -> list[Visitor]:
        visitors = [v for v in self._state.visitors.values() if v.website_id == website_id]
        return sorted(visitors, key=lambda v: v.first_seen)


class InMemorySessionRepo:
    def __init__(self, state: _State) -> None:
        self._state = state

    def get_latest_segment(self, website_id: str, client_session_id: str) -> Session | None:
        segments = [
            s
            for s in self._state.sessions.values()
            if s.website_id == website_id and s.client_session_id == client_session_id
        ]
        return max(segments, key=lambda s: s.segment) if segments else None

    def upsert(
        self,
        session_id: str,
        website_id: str,
        visitor_id: str,
        client_session_id: str,
        segment: int,
        event_at: datetime,
        page_increment: int,
        duration_increment: int,
        device_type: DeviceType,
    ) -> Session:
        key = (website_id, session_id)
        existing = self._state.sessions.get(key)
        if existing is None:
            session = Session(
                id=session_id,
                website_id=website_id,
                visitor_id=visitor_id,
                client_session_id=client_session_id,
                segment=segment,
                started_at=event_at,
                last_activity_at=event_at,
                page_count=page_increment,
                duration_seconds=duration_increment,
                device_type=device_type,
            )
        else:
            session = existing.model_copy(
                update={
                    "started_at": min(existing.started_at, event_at),
                    "last_activity_at": max(existing.last_activity_at, event_at),
                    "page_count": existing.page_count + page_increment,
                    "duration_seconds": existing.duration_seconds + duration_increment,
                }
            )
        self._state.sessions[key] = session
        return session

    def get(self, website_id: str, session_id: str) -> Session | None:
        return self._state.sessions.get((website_id, session_id))


class InMemoryEventRepo:
    def __init__(self, state: _State) -> None:
        self._state = state

    def append(self, event: Event) -> Event:
        self._state.events.append(event)
        return event

    def _matching(
        self,
        website_id: str,
        event_type: str | None,
    ) -> list[Event]:
        return [
            e
            for e in self._state.events
            if e.website_id == website_id and (event_type is None or e.event_type == event_type)
        ]

    def list_in_window(
        self,
        website_id: str,
        start: datetime,
        end: datetime,
        event_type: str | None = None,
    ) -> list[Event]:
        events = [e for e in self._matching(website_id, event_type) if start <= e.timestamp < end]
        return sorted(events, key=lambda e: (e.timestamp, e.id))

    def count_in_window(
        self,
        website_id: str,
        start: datetime,
        end: datetime,
        event_type: str | None = None,
    ) -> int:
        return len(self.list_in_window(website_id, start, end, event_type))

    def list_recent(
        self,
        website_id: str,
        event_type: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Event], int]:
        events = sorted(
            self._matching(website_id, event_type),
            key=lambda e: (e.timestamp, e.id),
            reverse=True,
        )
        return events[offset : offset + limit], len(events)


class InMemoryRollupRepo:
    def __init__(self, state: _State) -> None:
        self._state = state

    def get(self, website_id: str, day: date) -> DailyRollup | None:
        return self._state.rollups.get((website_id, day))

    def put(self, rollup: DailyRollup) -> DailyRollup:
        self._state.rollups[(rollup.website_id, rollup.day)] = rollup
        return rollup

    def increment_if_present(
        self, website_id: str, day: date, amount: int, updated_at: datetime
    ) -> bool:
        existing = self._state.rollups.get((website_id, day))
        if existing is None:
            return False
        self._state.rollups[(website_id, day)] = existing.model_copy(
            update={"page_views": existing.page_views + amount, "updated_at": updated_at}
        )
        return True


class InMemoryUnitOfWork:
    def __init__(self, store: InMemoryTrackingStore) -> None:
        self._store = store
        self._snapshot: _State | None = None
        state = store._state
        self.websites = InMemoryWebsiteRepo(state)
        self.visitors = InMemoryVisitorRepo(state)
        self.sessions = InMemorySessionRepo(state)
        self.events = InMemoryEventRepo(state)
        self.rollups = InMemoryRollupRepo(state)

    def __enter__(self) -> InMemoryUnitOfWork:
        self._store._lock.acquire()
        self._snapshot = copy.deepcopy(self._store._state)
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: Any, exc_tb: Any) -> None:
        try:
            if self._snapshot is not None:
                self.rollback()
        finally:
            self._store._lock.release()

    def commit(self) -> None:
        self._snapshot = None

    def rollback(self) -> None:
        if self._snapshot is None:
            return
        state = self._store._state
        state.websites = self._snapshot.websites
        state.visitors = self._snapshot.visitors
        state.sessions = self._snapshot.sessions
        state.events = self._snapshot.events
        state.rollups = self._snapshot.rollups
        self._snapshot = None


class InMemoryTrackingStore:
    def __init__(self) -> None:
        self._state = _State()
        self._lock = threading.RLock()

    def unit_of_work(self, read_only: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self)
