"""
Storage interfaces for the tracking store.

Every write path runs inside one unit of work: a single store
transaction that is committed explicitly and rolled back if the block
raises. Implementations must make the visitor and session upserts
atomic with respect to concurrent units of work on the same store.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol

from privacymetrics.core.entities import (
    DailyRollup,
    DeviceType,
    Event,
    Session,
    Visitor,
    Website,
)


class WebsiteRepoPort(Protocol):
    def get_by_tracking_code(self, tracking_code: str) -> Website | None:
        """Active website for a tracking code, or None."""
        ...

    def get_by_id(self, website_id: str) -> Website | None:
        ...

    def save(self, website: Website) -> Website:
        ...


class VisitorRepoPort(Protocol):
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
        """
        Insert the visitor or fold the sighting into the existing row.

        first_seen and last_seen widen to include seen_at,
        page_views grows by page_view_increment and location/language
        are only filled in when previously unknown.
        """
        ...

    def get(self, website_id: str, fingerprint: str) -> Visitor | None:
        ...

    def list_by_website(self, website_id: str) -> list[Visitor]:
        ...


class SessionRepoPort(Protocol):
    def get_latest_segment(self, website_id: str, client_session_id: str) -> Session | None:
        """Highest-numbered segment for a client session token."""
        ...

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
        """
        Create the session segment or apply one event to it.

        started_at is the earliest event seen, last_activity_at the
        latest; page_count and duration_seconds accumulate. The visitor
        and device of an existing segment are never changed.
        """
        ...

    def get(self, website_id: str, session_id: str) -> Session | None:
        ...


class EventRepoPort(Protocol):
    def append(self, event: Event) -> Event:
        ...

    def list_in_window(
        self,
        website_id: str,
        start: datetime,
        end: datetime,
        event_type: str | None = None,
    ) -> list[Event]:
        """Events with start <= timestamp < end, oldest first."""
        ...

    def count_in_window(
        self,
        website_id: str,
        start: datetime,
        end: datetime,
        event_type: str | None = None,
    ) -> int:
        ...

    def list_recent(
        self,
        website_id: str,
        event_type: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Event], int]:
        """Newest-first page of events plus the total matching count."""
        ...


class RollupRepoPort(Protocol):
    def get(self, website_id: str, day: date) -> DailyRollup | None:
        ...

    def put(self, rollup: DailyRollup) -> DailyRollup:
        ...

    def increment_if_present(self, website_id: str, day: date, amount: int, updated_at: datetime) -> bool:
        """Bump a cached day; returns False when the day is not cached."""
        ...


class UnitOfWorkPort(Protocol):
    websites: WebsiteRepoPort
    visitors: VisitorRepoPort
    sessions: SessionRepoPort
    events: EventRepoPort
    rollups: RollupRepoPort

    def __enter__(self) -> UnitOfWorkPort:
        ...

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


class TrackingStorePort(Protocol):
    def unit_of_work(self, read_only: bool = False) -> UnitOfWorkPort:
        ...
