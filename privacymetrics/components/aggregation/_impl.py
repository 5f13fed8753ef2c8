"""
Aggregation: dashboard metrics computed from the event log.

Every metric is a pure function of the events inside a half-open window
[start, end). Empty windows yield zeros and empty lists, never None.

Key behaviors:
- Unique visitors count any event type; sessions and bounces count pageviews
- Session duration is max(ts) - min(ts) across all of a session's
  in-window events, so single-event sessions last 0 seconds
- Rankings are sorted by count descending with a lexical tie-break
- Rounding is half-up, matching how dashboard percentages are presented
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from privacymetrics.core.entities import PAGEVIEW, DeviceType, Event
from privacymetrics.core.services.attribution import DIRECT, channel_for_referrer
from privacymetrics.rules.models import AggregationRules

from ._cache import DailyPageViewCache, day_bounds
from .models import (
    DashboardMetrics,
    DeviceStats,
    LocationStat,
    SeriesBucket,
    SeriesPoint,
    TimeWindow,
    TopPage,
    TrafficSourceStat,
)
from .ports import TimePort, TrackingStorePort

logger = logging.getLogger(__name__)

UNKNOWN_COUNTRY = "Unknown"


@dataclass(frozen=True)
class AggregationConfig:
    default_days: int = 7
    max_days: int = 365
    default_limit: int = 10
    max_limit: int = 100
    rollup_cache_enabled: bool = True

    @classmethod
    def from_rules(cls, rules: AggregationRules) -> AggregationConfig:
        return cls(
            default_days=rules.default_days,
            max_days=rules.max_days,
            default_limit=rules.default_limit,
            max_limit=rules.max_limit,
            rollup_cache_enabled=rules.rollup_cache_enabled,
        )


DEFAULT_CONFIG = AggregationConfig()


# --- Helpers ---


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _pageviews(events: Iterable[Event]) -> list[Event]:
    return [e for e in events if e.event_type == PAGEVIEW]


def _session_durations(events: Iterable[Event]) -> dict[str, float]:
    """Seconds between first and last event of each session."""
    bounds: dict[str, tuple[datetime, datetime]] = {}
    for e in events:
        if e.session_id in bounds:
            lo, hi = bounds[e.session_id]
            bounds[e.session_id] = (min(lo, e.timestamp), max(hi, e.timestamp))
        else:
            bounds[e.session_id] = (e.timestamp, e.timestamp)
    return {sid: (hi - lo).total_seconds() for sid, (lo, hi) in bounds.items()}


def _pageviews_per_session(events: Iterable[Event]) -> dict[str, int]:
    counts: dict[str, int] = defaultdict(int)
    for e in _pageviews(events):
        counts[e.session_id] += 1
    return counts


# --- Window helpers ---


def get_date_range(days: int, now: datetime) -> TimeWindow:
    """The last `days` days ending at `now`; days below 1 count as 1."""
    days = max(1, days)
    return TimeWindow(start=now - timedelta(days=days), end=now)


def bucket_start(ts: datetime, bucket: SeriesBucket) -> datetime:
    ts = ts.astimezone(UTC)
    if bucket == SeriesBucket.HOUR:
        return ts.replace(minute=0, second=0, microsecond=0)
    return ts.replace(hour=0, minute=0, second=0, microsecond=0)


def bucket_step(bucket: SeriesBucket) -> timedelta:
    return timedelta(hours=1) if bucket == SeriesBucket.HOUR else timedelta(days=1)


def iter_buckets(window: TimeWindow, bucket: SeriesBucket) -> list[datetime]:
    if window.length <= timedelta(0):
        return []
    step = bucket_step(bucket)
    current = bucket_start(window.start, bucket)
    starts = []
    while current < window.end:
        starts.append(current)
        current += step
    return starts


# --- Metric functions ---


def count_page_views(events: Iterable[Event]) -> int:
    return len(_pageviews(events))


def count_unique_visitors(events: Iterable[Event]) -> int:
    return len({e.visitor_id for e in events if e.visitor_id is not None})


def count_sessions(events: Iterable[Event]) -> int:
    return len({e.session_id for e in _pageviews(events)})


def calculate_bounce_rate(events: Iterable[Event]) -> int:
    """Percentage of in-window sessions with exactly one pageview."""
    per_session = _pageviews_per_session(events)
    if not per_session:
        return 0
    bounces = sum(1 for n in per_session.values() if n == 1)
    return round_half_up(100 * bounces / len(per_session))


def calculate_avg_session_duration(events: Iterable[Event]) -> int:
    """Mean session duration in whole seconds."""
    durations = _session_durations(events)
    if not durations:
        return 0
    return round_half_up(sum(durations.values()) / len(durations))


def percent_change(current: int | float, previous: int | float) -> int:
    if previous > 0:
        return round_half_up(100 * (current - previous) / previous)
    return 100 if current > 0 else 0


def compute_dashboard_metrics(current: list[Event], previous: list[Event]) -> DashboardMetrics:
    cur_views = count_page_views(current)
    cur_visitors = count_unique_visitors(current)
    cur_sessions = count_sessions(current)
    cur_duration = calculate_avg_session_duration(current)
    cur_bounce = calculate_bounce_rate(current)

    prev_views = count_page_views(previous)
    prev_visitors = count_unique_visitors(previous)
    prev_sessions = count_sessions(previous)
    prev_duration = calculate_avg_session_duration(previous)
    prev_bounce = calculate_bounce_rate(previous)

    return DashboardMetrics(
        page_views=cur_views,
        unique_visitors=cur_visitors,
        sessions=cur_sessions,
        avg_session_duration=cur_duration,
        bounce_rate=cur_bounce,
        page_views_change=percent_change(cur_views, prev_views),
        unique_visitors_change=percent_change(cur_visitors, prev_visitors),
        sessions_change=percent_change(cur_sessions, prev_sessions),
        avg_session_duration_change=percent_change(cur_duration, prev_duration),
        # Percentage points, not a relative change
        bounce_rate_change=cur_bounce - prev_bounce,
    )


def top_pages(events: list[Event], limit: int) -> list[TopPage]:
    pageviews = _pageviews(events)
    per_session_views = _pageviews_per_session(events)
    durations = _session_durations(events)

    views: dict[str, int] = defaultdict(int)
    visitors: dict[str, set[str]] = defaultdict(set)
    sessions: dict[str, set[str]] = defaultdict(set)
    for e in pageviews:
        views[e.page_url] += 1
        sessions[e.page_url].add(e.session_id)
        if e.visitor_id is not None:
            visitors[e.page_url].add(e.visitor_id)

    pages = []
    for url, count in views.items():
        url_sessions = sessions[url]
        bounces = sum(1 for sid in url_sessions if per_session_views[sid] == 1)
        pages.append(
            TopPage(
                url=url,
                views=count,
                unique_visitors=len(visitors[url]),
                bounce_rate=round_half_up(100 * bounces / len(url_sessions)),
                avg_duration=round_half_up(
                    sum(durations[sid] for sid in url_sessions) / len(url_sessions)
                ),
            )
        )

    pages.sort(key=lambda p: (-p.views, p.url))
    return pages[:limit]


def traffic_sources(events: list[Event], limit: int) -> list[TrafficSourceStat]:
    """Pageviews grouped by raw referrer; missing and empty referrers are Direct."""
    views: dict[str, int] = defaultdict(int)
    visitors: dict[str, set[str]] = defaultdict(set)
    sessions: dict[str, set[str]] = defaultdict(set)
    for e in _pageviews(events):
        key = e.referrer or DIRECT
        views[key] += 1
        sessions[key].add(e.session_id)
        if e.visitor_id is not None:
            visitors[key].add(e.visitor_id)

    sources = [
        TrafficSourceStat(
            referrer=key,
            channel=DIRECT if key == DIRECT else channel_for_referrer(key),
            visitors=len(visitors[key]),
            sessions=len(sessions[key]),
            page_views=count,
        )
        for key, count in views.items()
    ]
    sources.sort(key=lambda s: (-s.page_views, s.referrer))
    return sources[:limit]


def device_stats(events: list[Event]) -> DeviceStats:
    """Distinct sessions per device class among in-window pageviews."""
    session_device: dict[str, DeviceType] = {}
    for e in _pageviews(events):
        session_device.setdefault(e.session_id, e.device_type)

    counts: dict[DeviceType, int] = defaultdict(int)
    for device in session_device.values():
        counts[device] += 1

    return DeviceStats(
        mobile=counts[DeviceType.MOBILE],
        desktop=counts[DeviceType.DESKTOP],
        tablet=counts[DeviceType.TABLET],
        other=counts[DeviceType.OTHER],
    )


def device_percentages(stats: DeviceStats) -> dict[str, int]:
    counts = {
        "mobile": stats.mobile,
        "desktop": stats.desktop,
        "tablet": stats.tablet,
        "other": stats.other,
    }
    if stats.total == 0:
        return {k: 0 for k in counts}
    return {k: round_half_up(100 * v / stats.total) for k, v in counts.items()}


def location_stats(events: list[Event], limit: int) -> list[LocationStat]:
    views: dict[str, int] = defaultdict(int)
    visitors: dict[str, set[str]] = defaultdict(set)
    for e in _pageviews(events):
        country = e.country or UNKNOWN_COUNTRY
        views[country] += 1
        if e.visitor_id is not None:
            visitors[country].add(e.visitor_id)

    stats = [
        LocationStat(country=c, visitors=len(visitors[c]), page_views=n) for c, n in views.items()
    ]
    stats.sort(key=lambda s: (-s.page_views, s.country))
    return stats[:limit]


def page_view_series(
    events: list[Event],
    window: TimeWindow,
    bucket: SeriesBucket = SeriesBucket.DAY,
    cached_days: dict[date, int] | None = None,
) -> list[SeriesPoint]:
    """
    Zero-filled pageview counts per bucket, ascending.

    Whole days found in cached_days use the cached count; every other
    bucket counts the in-window events directly.
    """
    cached_days = cached_days or {}
    counts: dict[datetime, int] = defaultdict(int)
    for e in _pageviews(events):
        if window.contains(e.timestamp):
            counts[bucket_start(e.timestamp, bucket)] += 1

    points = []
    for start in iter_buckets(window, bucket):
        day = start.date()
        if bucket == SeriesBucket.DAY and day in cached_days:
            points.append(SeriesPoint(bucket_start=start, page_views=cached_days[day]))
        else:
            points.append(SeriesPoint(bucket_start=start, page_views=counts[start]))
    return points


def whole_days_in(window: TimeWindow) -> list[date]:
    """UTC days lying entirely inside the window."""
    days = []
    for start in iter_buckets(window, SeriesBucket.DAY):
        day_start, day_end = day_bounds(start.date())
        if window.start <= day_start and day_end <= window.end:
            days.append(start.date())
    return days


# --- Aggregation Service ---


class AggregationService:
    """
    Read-side query layer.

    Each public query opens one read transaction, loads the window's
    events once and runs the pure metric functions over them.
    """

    def __init__(
        self,
        store: TrackingStorePort,
        time_port: TimePort,
        config: AggregationConfig | None = None,
    ) -> None:
        self._store = store
        self._time = time_port
        self._config = config or DEFAULT_CONFIG
        self._daily_cache = DailyPageViewCache(store, time_port)

    @property
    def config(self) -> AggregationConfig:
        return self._config

    def window_for_days(self, days: int) -> TimeWindow:
        return get_date_range(min(days, self._config.max_days), self._time.now_utc())

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self._config.default_limit
        return max(1, min(limit, self._config.max_limit))

    def website_exists(self, website_id: str) -> bool:
        with self._store.unit_of_work(read_only=True) as uow:
            return uow.websites.get_by_id(website_id) is not None

    def _events(self, website_id: str, window: TimeWindow) -> list[Event]:
        with self._store.unit_of_work(read_only=True) as uow:
            return uow.events.list_in_window(website_id, window.start, window.end)

    # Single-metric queries

    def count_page_views(self, website_id: str, window: TimeWindow) -> int:
        with self._store.unit_of_work(read_only=True) as uow:
            return uow.events.count_in_window(website_id, window.start, window.end, PAGEVIEW)

    def count_unique_visitors(self, website_id: str, window: TimeWindow) -> int:
        return count_unique_visitors(self._events(website_id, window))

    def count_sessions(self, website_id: str, window: TimeWindow) -> int:
        return count_sessions(self._events(website_id, window))

    def calculate_bounce_rate(self, website_id: str, window: TimeWindow) -> int:
        return calculate_bounce_rate(self._events(website_id, window))

    def calculate_avg_session_duration(self, website_id: str, window: TimeWindow) -> int:
        return calculate_avg_session_duration(self._events(website_id, window))

    # Breakdowns

    def get_top_pages(self, website_id: str, window: TimeWindow, limit: int | None = None) -> list[TopPage]:
        return top_pages(self._events(website_id, window), self.clamp_limit(limit))

    def get_traffic_sources(
        self, website_id: str, window: TimeWindow, limit: int | None = None
    ) -> list[TrafficSourceStat]:
        return traffic_sources(self._events(website_id, window), self.clamp_limit(limit))

    def get_device_stats(self, website_id: str, window: TimeWindow) -> DeviceStats:
        return device_stats(self._events(website_id, window))

    def get_location_stats(
        self, website_id: str, window: TimeWindow, limit: int | None = None
    ) -> list[LocationStat]:
        return location_stats(self._events(website_id, window), self.clamp_limit(limit))

    def get_page_view_series(
        self,
        website_id: str,
        window: TimeWindow,
        bucket: SeriesBucket = SeriesBucket.DAY,
    ) -> list[SeriesPoint]:
        cached: dict[date, int] = {}
        if bucket == SeriesBucket.DAY and self._config.rollup_cache_enabled:
            cached = self._daily_cache.get_counts(website_id, whole_days_in(window))
        return page_view_series(self._events(website_id, window), window, bucket, cached)

    # Bundle

    def get_dashboard_metrics(self, website_id: str, days_back: int) -> tuple[DashboardMetrics, TimeWindow]:
        """Headline metrics for the last `days_back` days and their change vs the window before."""
        window = self.window_for_days(days_back)
        previous = window.previous()

        with self._store.unit_of_work(read_only=True) as uow:
            current_events = uow.events.list_in_window(website_id, window.start, window.end)
            previous_events = uow.events.list_in_window(website_id, previous.start, previous.end)

        logger.debug(
            "Dashboard for %s: %d current / %d previous events",
            website_id,
            len(current_events),
            len(previous_events),
        )
        return compute_dashboard_metrics(current_events, previous_events), window


def create_aggregation_service(
    store: TrackingStorePort,
    time_port: TimePort,
    config: AggregationConfig | None = None,
) -> AggregationService:
    return AggregationService(store=store, time_port=time_port, config=config)
