"""
Dashboard API.

Read-only endpoints over the aggregation service. All take `websiteId`
and a `days` window ending now; an unknown website is a 404.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from privacymetrics.api.deps import get_aggregation_service, get_store
from privacymetrics.api.errors import ApiError
from privacymetrics.api.schemas import (
    DeviceData,
    DevicesResponse,
    LocationItem,
    LocationsResponse,
    MetricsData,
    MetricsResponse,
    PageViewPoint,
    PageViewsResponse,
    ReferrerItem,
    ReferrersResponse,
    TopPageItem,
    TopPagesResponse,
    WebsiteSummary,
)
from privacymetrics.components.aggregation import (
    AggregationService,
    SeriesBucket,
    device_percentages,
)
from privacymetrics.core.entities import Website
from privacymetrics.core.errors import ErrorCode
from privacymetrics.core.ports import TrackingStorePort

router = APIRouter()


def get_website(
    website_id: str = Query(..., alias="websiteId", min_length=1),
    store: TrackingStorePort = Depends(get_store),
) -> Website:
    with store.unit_of_work(read_only=True) as uow:
        website = uow.websites.get_by_id(website_id)
    if website is None:
        raise ApiError(ErrorCode.NOT_FOUND, "Website not found")
    return website


@router.get("/metrics", response_model=MetricsResponse)
def get_metrics(
    days: int = Query(7, ge=1),
    website: Website = Depends(get_website),
    service: AggregationService = Depends(get_aggregation_service),
) -> MetricsResponse:
    metrics, window = service.get_dashboard_metrics(website.id, days)
    effective_days = window.length.days
    return MetricsResponse(
        data=MetricsData(
            page_views=metrics.page_views,
            unique_visitors=metrics.unique_visitors,
            sessions=metrics.sessions,
            avg_session_duration=metrics.avg_session_duration,
            bounce_rate=metrics.bounce_rate,
            page_views_change=metrics.page_views_change,
            unique_visitors_change=metrics.unique_visitors_change,
            sessions_change=metrics.sessions_change,
            avg_session_duration_change=metrics.avg_session_duration_change,
            bounce_rate_change=metrics.bounce_rate_change,
        ),
        website=WebsiteSummary(id=website.id, domain=website.domain),
        period=f"Last {effective_days} days",
        start=window.start,
        end=window.end,
    )


@router.get("/pageviews", response_model=PageViewsResponse)
def get_pageviews(
    days: int = Query(7, ge=1),
    bucket: SeriesBucket = Query(SeriesBucket.DAY),
    website: Website = Depends(get_website),
    service: AggregationService = Depends(get_aggregation_service),
) -> PageViewsResponse:
    window = service.window_for_days(days)
    points = service.get_page_view_series(website.id, window, bucket)
    return PageViewsResponse(
        data=[
            PageViewPoint(
                date=p.bucket_start.date().isoformat()
                if bucket == SeriesBucket.DAY
                else p.bucket_start.isoformat(),
                pageviews=p.page_views,
            )
            for p in points
        ],
        total=sum(p.page_views for p in points),
    )


@router.get("/top-pages", response_model=TopPagesResponse)
def get_top_pages(
    days: int = Query(7, ge=1),
    limit: int | None = Query(None, ge=1),
    website: Website = Depends(get_website),
    service: AggregationService = Depends(get_aggregation_service),
) -> TopPagesResponse:
    pages = service.get_top_pages(website.id, service.window_for_days(days), limit)
    return TopPagesResponse(
        data=[
            TopPageItem(
                url=p.url,
                views=p.views,
                unique_visitors=p.unique_visitors,
                bounce_rate=p.bounce_rate,
                avg_duration=p.avg_duration,
            )
            for p in pages
        ],
        total=len(pages),
    )


@router.get("/referrers", response_model=ReferrersResponse)
def get_referrers(
    days: int = Query(7, ge=1),
    limit: int | None = Query(None, ge=1),
    website: Website = Depends(get_website),
    service: AggregationService = Depends(get_aggregation_service),
) -> ReferrersResponse:
    sources = service.get_traffic_sources(website.id, service.window_for_days(days), limit)
    return ReferrersResponse(
        data=[
            ReferrerItem(
                referrer=s.referrer,
                channel=s.channel,
                visitors=s.visitors,
                sessions=s.sessions,
                page_views=s.page_views,
            )
            for s in sources
        ],
        total=len(sources),
    )


@router.get("/devices", response_model=DevicesResponse)
def get_devices(
    days: int = Query(7, ge=1),
    website: Website = Depends(get_website),
    service: AggregationService = Depends(get_aggregation_service),
) -> DevicesResponse:
    stats = service.get_device_stats(website.id, service.window_for_days(days))
    return DevicesResponse(
        data=DeviceData(
            mobile=stats.mobile,
            desktop=stats.desktop,
            tablet=stats.tablet,
            other=stats.other,
        ),
        percentages=DeviceData(**device_percentages(stats)),
        total=stats.total,
    )


@router.get("/locations", response_model=LocationsResponse)
def get_locations(
    days: int = Query(7, ge=1),
    limit: int | None = Query(None, ge=1),
    website: Website = Depends(get_website),
    service: AggregationService = Depends(get_aggregation_service),
) -> LocationsResponse:
    locations = service.get_location_stats(website.id, service.window_for_days(days), limit)
    return LocationsResponse(
        data=[
            LocationItem(country=loc.country, visitors=loc.visitors, page_views=loc.page_views)
            for loc in locations
        ],
        total=len(locations),
    )
