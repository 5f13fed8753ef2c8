"""
SQLite implementation of the tracking store ports.

Timestamps are stored as UTC ISO-8601 strings with fixed microsecond
precision so that lexicographic order equals chronological order and
window predicates can be pushed into SQL.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, date, datetime
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
from privacymetrics.core.errors import StoreError

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def to_db_ts(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def parse_dt(s: str | None) -> datetime | None:
    return datetime.fromisoformat(s) if s else None


def connect(db_path: str, timeout: float = 30.0) -> sqlite3.Connection:
    """
    Open a connection in autocommit mode.

    Transactions are begun explicitly by the unit of work, so the
    driver must not issue its own BEGIN statements.
    """
    conn = sqlite3.connect(db_path, timeout=timeout, isolation_level=None, check_same_thread=False)
    conn.row_factory = dict_factory
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(f"PRAGMA busy_timeout = {int(timeout * 1000)};")
    return conn


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn
        return connect(self.db_path)

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None


# -----------------------------------------------------------------------------
# Websites
# -----------------------------------------------------------------------------


class SQLiteWebsiteRepo(SQLiteRepoBase):
    def get_by_tracking_code(self, tracking_code: str) -> Website | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM websites WHERE tracking_code = ? AND is_active = 1",
                (tracking_code,),
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def get_by_id(self, website_id: str) -> Website | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM websites WHERE id = ?", (website_id,)).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def save(self, website: Website) -> Website:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO websites (id, user_id, domain, tracking_code, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    user_id = excluded.user_id,
                    domain = excluded.domain,
                    tracking_code = excluded.tracking_code,
                    is_active = excluded.is_active
                """,
                (
                    website.id,
                    website.user_id,
                    website.domain,
                    website.tracking_code,
                    1 if website.is_active else 0,
                    to_db_ts(website.created_at),
                ),
            )
            return website
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> Website:
        return Website(
            id=row["id"],
            user_id=row["user_id"],
            domain=row["domain"],
            tracking_code=row["tracking_code"],
            is_active=bool(row["is_active"]),
            created_at=parse_dt(row["created_at"]),
        )


# -----------------------------------------------------------------------------
# Visitors
# -----------------------------------------------------------------------------


class SQLiteVisitorRepo(SQLiteRepoBase):
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
        conn = self._get_conn()
        try:
            seen = to_db_ts(seen_at)
            row = conn.execute(
                """
                INSERT INTO visitors (
                    id, website_id, fingerprint, first_seen, last_seen,
                    page_views, country, region, language
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(website_id, fingerprint) DO UPDATE SET
                    first_seen = MIN(first_seen, excluded.first_seen),
                    last_seen = MAX(last_seen, excluded.last_seen),
                    page_views = page_views + excluded.page_views,
                    country = COALESCE(country, excluded.country),
                    region = COALESCE(region, excluded.region),
                    language = COALESCE(language, excluded.language)
                RETURNING *
                """,
                (
                    uuid4().hex,
                    website_id,
                    fingerprint,
                    seen,
                    seen,
                    page_view_increment,
                    country,
                    region,
                    language,
                ),
            ).fetchone()
            return self._map_row(row)
        finally:
            if self._should_close():
                conn.close()

    def get(self, website_id: str, fingerprint: str) -> Visitor | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM visitors WHERE website_id = ? AND fingerprint = ?",
                (website_id, fingerprint),
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def list_by_website(self, website_id: str) -> list[Visitor]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM visitors WHERE website_id = ? ORDER BY first_seen",
                (website_id,),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> Visitor:
        return Visitor(
            id=row["id"],
            website_id=row["website_id"],
            fingerprint=row["fingerprint"],
            first_seen=parse_dt(row["first_seen"]),
            last_seen=parse_dt(row["last_seen"]),
            page_views=row["page_views"],
            country=row["country"],
            region=row["region"],
            language=row["language"],
        )


# -----------------------------------------------------------------------------
# Sessions
# -----------------------------------------------------------------------------


class SQLiteSessionRepo(SQLiteRepoBase):
    def get_latest_segment(self, website_id: str, client_session_id: str) -> Session | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                SELECT * FROM sessions
                WHERE website_id = ? AND client_session_id = ?
                ORDER BY segment DESC
                LIMIT 1
                """,
                (website_id, client_session_id),
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

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
        conn = self._get_conn()
        try:
            ts = to_db_ts(event_at)
            row = conn.execute(
                """
                INSERT INTO sessions (
                    id, website_id, visitor_id, client_session_id, segment,
                    started_at, last_activity_at, page_count, duration_seconds, device_type
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(website_id, id) DO UPDATE SET
                    started_at = MIN(started_at, excluded.started_at),
                    last_activity_at = MAX(last_activity_at, excluded.last_activity_at),
                    page_count = page_count + excluded.page_count,
                    duration_seconds = duration_seconds + excluded.duration_seconds
                RETURNING *
                """,
                (
                    session_id,
                    website_id,
                    visitor_id,
                    client_session_id,
                    segment,
                    ts,
                    ts,
                    page_increment,
                    duration_increment,
                    DeviceType(device_type).value,
                ),
            ).fetchone()
            return self._map_row(row)
        finally:
            if self._should_close():
                conn.close()

    def get(self, website_id: str, session_id: str) -> Session | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM sessions WHERE website_id = ? AND id = ?",
                (website_id, session_id),
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> Session:
        return Session(
            id=row["id"],
            website_id=row["website_id"],
            visitor_id=row["visitor_id"],
            client_session_id=row["client_session_id"],
            segment=row["segment"],
            started_at=parse_dt(row["started_at"]),
            last_activity_at=parse_dt(row["last_activity_at"]),
            page_count=row["page_count"],
            duration_seconds=row["duration_seconds"],
            device_type=DeviceType(row["device_type"]),
        )


# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------


class SQLiteEventRepo(SQLiteRepoBase):
    def append(self, event: Event) -> Event:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO events (
                    id, website_id, session_id, visitor_id, event_type, page_url, referrer,
                    utm_source, utm_medium, utm_campaign, device_type, country,
                    properties_json, timestamp, received_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id,
                    event.website_id,
                    event.session_id,
                    event.visitor_id,
                    event.event_type,
                    event.page_url,
                    event.referrer or None,
                    event.utm_source,
                    event.utm_medium,
                    event.utm_campaign,
                    event.device_type.value,
                    event.country,
                    json.dumps(event.properties) if event.properties is not None else None,
                    to_db_ts(event.timestamp),
                    to_db_ts(event.received_at or event.timestamp),
                ),
            )
            return event
        finally:
            if self._should_close():
                conn.close()

    def _window_clause(
        self,
        website_id: str,
        start: datetime,
        end: datetime,
        event_type: str | None,
    ) -> tuple[str, list[Any]]:
        clause = "website_id = ? AND timestamp >= ? AND timestamp < ?"
        params: list[Any] = [website_id, to_db_ts(start), to_db_ts(end)]
        if event_type is not None:
            clause += " AND event_type = ?"
            params.append(event_type)
        return clause, params

    def list_in_window(
        self,
        website_id: str,
        start: datetime,
        end: datetime,
        event_type: str | None = None,
    ) -> list[Event]:
        conn = self._get_conn()
        try:
            clause, params = self._window_clause(website_id, start, end, event_type)
            rows = conn.execute(
                f"SELECT * FROM events WHERE {clause} ORDER BY timestamp, id",
                params,
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def count_in_window(
        self,
        website_id: str,
        start: datetime,
        end: datetime,
        event_type: str | None = None,
    ) -> int:
        conn = self._get_conn()
        try:
            clause, params = self._window_clause(website_id, start, end, event_type)
            row = conn.execute(f"SELECT COUNT(*) AS n FROM events WHERE {clause}", params).fetchone()
            return int(row["n"])
        finally:
            if self._should_close():
                conn.close()

    def list_recent(
        self,
        website_id: str,
        event_type: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Event], int]:
        conn = self._get_conn()
        try:
            clause = "website_id = ?"
            params: list[Any] = [website_id]
            if event_type is not None:
                clause += " AND event_type = ?"
                params.append(event_type)

            total = conn.execute(
                f"SELECT COUNT(*) AS n FROM events WHERE {clause}", params
            ).fetchone()["n"]
            rows = conn.execute(
                f"""
                SELECT * FROM events WHERE {clause}
                ORDER BY timestamp DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
            return [self._map_row(r) for r in rows], int(total)
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> Event:
        props = row["properties_json"]
        return Event(
            id=row["id"],
            website_id=row["website_id"],
            session_id=row["session_id"],
            visitor_id=row["visitor_id"],
            event_type=row["event_type"],
            page_url=row["page_url"],
            referrer=row["referrer"],
            utm_source=row["utm_source"],
            utm_medium=row["utm_medium"],
            utm_campaign=row["utm_campaign"],
            device_type=DeviceType(row["device_type"]),
            country=row["country"],
            properties=json.loads(props) if props else None,
            timestamp=parse_dt(row["timestamp"]),
            received_at=parse_dt(row["received_at"]),
        )


# -----------------------------------------------------------------------------
# Daily rollups
# -----------------------------------------------------------------------------


class SQLiteRollupRepo(SQLiteRepoBase):
    def get(self, website_id: str, day: date) -> DailyRollup | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM daily_rollups WHERE website_id = ? AND day = ?",
                (website_id, day.isoformat()),
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def put(self, rollup: DailyRollup) -> DailyRollup:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO daily_rollups (website_id, day, page_views, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(website_id, day) DO UPDATE SET
                    page_views = excluded.page_views,
                    updated_at = excluded.updated_at
                """,
                (
                    rollup.website_id,
                    rollup.day.isoformat(),
                    rollup.page_views,
                    to_db_ts(rollup.updated_at),
                ),
            )
            return rollup
        finally:
            if self._should_close():
                conn.close()

    def increment_if_present(
        self, website_id: str, day: date, amount: int, updated_at: datetime
    ) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                UPDATE daily_rollups
                SET page_views = page_views + ?, updated_at = ?
                WHERE website_id = ? AND day = ?
                """,
                (amount, to_db_ts(updated_at), website_id, day.isoformat()),
            )
            return cursor.rowcount > 0
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> DailyRollup:
        return DailyRollup(
            website_id=row["website_id"],
            day=date.fromisoformat(row["day"]),
            page_views=row["page_views"],
            updated_at=parse_dt(row["updated_at"]),
        )


# -----------------------------------------------------------------------------
# Unit of Work
# -----------------------------------------------------------------------------


class SQLiteUnitOfWork:
    """
    One store transaction shared by all repositories.

    Write units begin with BEGIN IMMEDIATE so the write lock is taken
    up front; concurrent writers queue on the busy timeout instead of
    failing on lock upgrade. Anything not committed when the block
    exits is rolled back.
    """

    def __init__(self, db_path: str, immediate: bool = True, timeout: float = 30.0):
        self.db_path = db_path
        self._immediate = immediate
        self._timeout = timeout
        self._conn: sqlite3.Connection | None = None

        self._websites: SQLiteWebsiteRepo | None = None
        self._visitors: SQLiteVisitorRepo | None = None
        self._sessions: SQLiteSessionRepo | None = None
        self._events: SQLiteEventRepo | None = None
        self._rollups: SQLiteRollupRepo | None = None

    def __enter__(self) -> SQLiteUnitOfWork:
        try:
            self._conn = connect(self.db_path, self._timeout)
            self._conn.execute("BEGIN IMMEDIATE" if self._immediate else "BEGIN")
        except sqlite3.Error as e:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            raise StoreError(f"Could not open transaction: {e}") from e
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._conn:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            self._conn.close()
            self._conn = None

    def commit(self) -> None:
        if self._conn and self._conn.in_transaction:
            try:
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                raise StoreError(f"Commit failed: {e}") from e

    def rollback(self) -> None:
        if self._conn and self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    @property
    def websites(self) -> SQLiteWebsiteRepo:
        if self._websites is None:
            self._websites = SQLiteWebsiteRepo(self.db_path, self._conn)
        return self._websites

    @property
    def visitors(self) -> SQLiteVisitorRepo:
        if self._visitors is None:
            self._visitors = SQLiteVisitorRepo(self.db_path, self._conn)
        return self._visitors

    @property
    def sessions(self) -> SQLiteSessionRepo:
        if self._sessions is None:
            self._sessions = SQLiteSessionRepo(self.db_path, self._conn)
        return self._sessions

    @property
    def events(self) -> SQLiteEventRepo:
        if self._events is None:
            self._events = SQLiteEventRepo(self.db_path, self._conn)
        return self._events

    @property
    def rollups(self) -> SQLiteRollupRepo:
        if self._rollups is None:
            self._rollups = SQLiteRollupRepo(self.db_path, self._conn)
        return self._rollups


class SQLiteTrackingStore:
    """Factory for units of work against one database file."""

    def __init__(self, db_path: str, timeout: float = 30.0):
        self.db_path = db_path
        self.timeout = timeout
        conn = connect(db_path, timeout)
        try:
            conn.execute("PRAGMA journal_mode = WAL;")
        finally:
            conn.close()

    def unit_of_work(self, read_only: bool = False) -> SQLiteUnitOfWork:
        return SQLiteUnitOfWork(self.db_path, immediate=not read_only, timeout=self.timeout)
