"""
Aggregation component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from privacymetrics.core.errors import ErrorCode


class SeriesBucket(str, Enum):
    HOUR = "hour"
    DAY = "day"


@dataclass(frozen=True)
class AggregationError:
    code: str
    message: str
    field_name: str | None = None


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("window end must not precede start")

    @property
    def length(self) -> timedelta:
        return self.end - self.start

    def previous(self) -> TimeWindow:
        """The immediately preceding window of equal length."""
        return TimeWindow(start=self.start - self.length, end=self.start)

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end


# --- Inputs ---


@dataclass(frozen=True)
class DashboardMetricsInput:
    website_id: str
    days_back: int = 7


@dataclass(frozen=True)
class WindowQueryInput:
    """
    Query over a window.

    An explicit start/end pair wins; otherwise the window is the last
    `days` days ending now.
    """

    website_id: str
    days: int = 7
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = None
    bucket: SeriesBucket = SeriesBucket.DAY


# --- Result records ---


@dataclass(frozen=True)
class DashboardMetrics:
    page_views: int
    unique_visitors: int
    sessions: int
    avg_session_duration: int
    bounce_rate: int
    page_views_change: int
    unique_visitors_change: int
    sessions_change: int
    avg_session_duration_change: int
    bounce_rate_change: int


@dataclass(frozen=True)
class TopPage:
    url: str
    views: int
    unique_visitors: int
    bounce_rate: int
    avg_duration: int


@dataclass(frozen=True)
class TrafficSourceStat:
    referrer: str
    channel: str
    visitors: int
    sessions: int
    page_views: int


@dataclass(frozen=True)
class DeviceStats:
    """Distinct in-window sessions per device class."""

    mobile: int = 0
    desktop: int = 0
    tablet: int = 0
    other: int = 0

    @property
    def total(self) -> int:
        return self.mobile + self.desktop + self.tablet + self.other


@dataclass(frozen=True)
class LocationStat:
    country: str
    visitors: int
    page_views: int


@dataclass(frozen=True)
class SeriesPoint:
    bucket_start: datetime
    page_views: int


# --- Outputs ---


@dataclass
class _Output:
    errors: list[AggregationError] = field(default_factory=list)
    error_code: ErrorCode | None = None
    success: bool = True


@dataclass
class DashboardOutput(_Output):
    metrics: DashboardMetrics | None = None
    window: TimeWindow | None = None


@dataclass
class TopPagesOutput(_Output):
    pages: list[TopPage] = field(default_factory=list)


@dataclass
class TrafficSourcesOutput(_Output):
    sources: list[TrafficSourceStat] = field(default_factory=list)


@dataclass
class DeviceStatsOutput(_Output):
    stats: DeviceStats = field(default_factory=DeviceStats)


@dataclass
class LocationsOutput(_Output):
    locations: list[LocationStat] = field(default_factory=list)


@dataclass
class SeriesOutput(_Output):
    points: list[SeriesPoint] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(p.page_views for p in self.points)
