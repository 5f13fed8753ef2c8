"""
Aggregation component - dashboard metrics, breakdowns and time series.
"""

from ._cache import DailyPageViewCache
from ._impl import (
    AggregationConfig,
    AggregationService,
    calculate_avg_session_duration,
    calculate_bounce_rate,
    compute_dashboard_metrics,
    count_page_views,
    count_sessions,
    count_unique_visitors,
    create_aggregation_service,
    device_percentages,
    device_stats,
    get_date_range,
    location_stats,
    page_view_series,
    percent_change,
    round_half_up,
    top_pages,
    traffic_sources,
)
from .component import (
    run_get_dashboard_metrics,
    run_get_device_stats,
    run_get_locations,
    run_get_page_view_series,
    run_get_top_pages,
    run_get_traffic_sources,
)
from .models import (
    AggregationError,
    DashboardMetrics,
    DashboardMetricsInput,
    DashboardOutput,
    DeviceStats,
    DeviceStatsOutput,
    LocationsOutput,
    LocationStat,
    SeriesBucket,
    SeriesOutput,
    SeriesPoint,
    TimeWindow,
    TopPage,
    TopPagesOutput,
    TrafficSourcesOutput,
    TrafficSourceStat,
    WindowQueryInput,
)

__all__ = [
    # Entry points
    "run_get_dashboard_metrics",
    "run_get_device_stats",
    "run_get_locations",
    "run_get_page_view_series",
    "run_get_top_pages",
    "run_get_traffic_sources",
    # Models
    "AggregationError",
    "DashboardMetrics",
    "DashboardMetricsInput",
    "DashboardOutput",
    "DeviceStats",
    "DeviceStatsOutput",
    "LocationStat",
    "LocationsOutput",
    "SeriesBucket",
    "SeriesOutput",
    "SeriesPoint",
    "TimeWindow",
    "TopPage",
    "TopPagesOutput",
    "TrafficSourceStat",
    "TrafficSourcesOutput",
    "WindowQueryInput",
    # Service and metric functions
    "AggregationConfig",
    "AggregationService",
    "DailyPageViewCache",
    "calculate_avg_session_duration",
    "calculate_bounce_rate",
    "compute_dashboard_metrics",
    "count_page_views",
    "count_sessions",
    "count_unique_visitors",
    "create_aggregation_service",
    "device_percentages",
    "device_stats",
    "get_date_range",
    "location_stats",
    "page_view_series",
    "percent_change",
    "round_half_up",
    "top_pages",
    "traffic_sources",
]
