"""
Aggregation component - dashboard metrics from the event log.

Invariants:
- I1: Read-only; the only write is the daily rollup backfill
- I2: Empty windows return zero values, never None
- I3: Windows are half-open [start, end)
- I4: Rankings are deterministic for identical data
"""

from __future__ import annotations

from typing import TypeVar

from privacymetrics.core.errors import ErrorCode

from ._impl import AggregationConfig, AggregationService
from .models import (
    AggregationError,
    DashboardMetricsInput,
    DashboardOutput,
    DeviceStatsOutput,
    LocationsOutput,
    SeriesOutput,
    TimeWindow,
    TopPagesOutput,
    TrafficSourcesOutput,
    WindowQueryInput,
    _Output,
)
from .ports import TimePort, TrackingStorePort

OutputT = TypeVar("OutputT", bound=_Output)


def _not_found(output: OutputT) -> OutputT:
    output.errors.append(AggregationError("not_found", "Website not found", "website_id"))
    output.error_code = ErrorCode.NOT_FOUND
    output.success = False
    return output


def _window(service: AggregationService, inp: WindowQueryInput) -> TimeWindow:
    if inp.start is not None and inp.end is not None:
        return TimeWindow(start=inp.start, end=inp.end)
    return service.window_for_days(inp.days)


def run_get_dashboard_metrics(
    inp: DashboardMetricsInput,
    *,
    store: TrackingStorePort,
    time_port: TimePort,
    config: AggregationConfig | None = None,
) -> DashboardOutput:
    """
    Headline metrics for the last N days with period-over-period change.

    Returns:
        DashboardOutput; NOT_FOUND when the website does not exist.
    """
    service = AggregationService(store, time_port, config)
    if not service.website_exists(inp.website_id):
        return _not_found(DashboardOutput())

    metrics, window = service.get_dashboard_metrics(inp.website_id, inp.days_back)
    return DashboardOutput(metrics=metrics, window=window)


def run_get_top_pages(
    inp: WindowQueryInput,
    *,
    store: TrackingStorePort,
    time_port: TimePort,
    config: AggregationConfig | None = None,
) -> TopPagesOutput:
    service = AggregationService(store, time_port, config)
    if not service.website_exists(inp.website_id):
        return _not_found(TopPagesOutput())
    return TopPagesOutput(pages=service.get_top_pages(inp.website_id, _window(service, inp), inp.limit))


def run_get_traffic_sources(
    inp: WindowQueryInput,
    *,
    store: TrackingStorePort,
    time_port: TimePort,
    config: AggregationConfig | None = None,
) -> TrafficSourcesOutput:
    service = AggregationService(store, time_port, config)
    if not service.website_exists(inp.website_id):
        return _not_found(TrafficSourcesOutput())
    return TrafficSourcesOutput(
        sources=service.get_traffic_sources(inp.website_id, _window(service, inp), inp.limit)
    )


def run_get_device_stats(
    inp: WindowQueryInput,
    *,
    store: TrackingStorePort,
    time_port: TimePort,
    config: AggregationConfig | None = None,
) -> DeviceStatsOutput:
    service = AggregationService(store, time_port, config)
    if not service.website_exists(inp.website_id):
        return _not_found(DeviceStatsOutput())
    return DeviceStatsOutput(stats=service.get_device_stats(inp.website_id, _window(service, inp)))


def run_get_locations(
    inp: WindowQueryInput,
    *,
    store: TrackingStorePort,
    time_port: TimePort,
    config: AggregationConfig | None = None,
) -> LocationsOutput:
    service = AggregationService(store, time_port, config)
    if not service.website_exists(inp.website_id):
        return _not_found(LocationsOutput())
    return LocationsOutput(
        locations=service.get_location_stats(inp.website_id, _window(service, inp), inp.limit)
    )


def run_get_page_view_series(
    inp: WindowQueryInput,
    *,
    store: TrackingStorePort,
    time_port: TimePort,
    config: AggregationConfig | None = None,
) -> SeriesOutput:
    service = AggregationService(store, time_port, config)
    if not service.website_exists(inp.website_id):
        return _not_found(SeriesOutput())
    return SeriesOutput(
        points=service.get_page_view_series(inp.website_id, _window(service, inp), inp.bucket)
    )
