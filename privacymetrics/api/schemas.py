"""Response models. Field names are snake_case in Python and camelCase on the wire."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Ingestion ---


class BatchRequest(BaseModel):
    # Items stay untyped so one malformed item is reported per index
    # instead of failing the whole request.
    events: list[Any] = Field(..., min_length=1)


class EventResponse(CamelModel):
    id: str
    website_id: str
    event_type: str
    page_url: str
    referrer: str | None = None
    session_id: str
    visitor_id: str | None = None
    timestamp: datetime


class BatchItemErrorResponse(CamelModel):
    index: int
    error: str
    message: str


class BatchResponse(CamelModel):
    success: bool
    events_created: int
    events: list[EventResponse]
    errors: list[BatchItemErrorResponse] | None = None
    message: str


class EventListItem(CamelModel):
    id: str
    event_type: str
    page_url: str
    referrer: str | None = None
    session_id: str
    visitor_id: str | None = None
    properties: dict[str, Any] | None = None
    timestamp: datetime


class Pagination(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class EventListResponse(CamelModel):
    events: list[EventListItem]
    pagination: Pagination


# --- Dashboard ---


class WebsiteSummary(CamelModel):
    id: str
    domain: str


class MetricsData(CamelModel):
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


class MetricsResponse(CamelModel):
    success: bool = True
    data: MetricsData
    website: WebsiteSummary
    period: str
    start: datetime
    end: datetime


class PageViewPoint(CamelModel):
    date: str
    pageviews: int


class PageViewsResponse(CamelModel):
    success: bool = True
    data: list[PageViewPoint]
    total: int


class TopPageItem(CamelModel):
    url: str
    views: int
    unique_visitors: int
    bounce_rate: int
    avg_duration: int


class TopPagesResponse(CamelModel):
    success: bool = True
    data: list[TopPageItem]
    total: int


class ReferrerItem(CamelModel):
    referrer: str
    channel: str
    visitors: int
    sessions: int
    page_views: int


class ReferrersResponse(CamelModel):
    success: bool = True
    data: list[ReferrerItem]
    total: int


class DeviceData(CamelModel):
    mobile: int
    desktop: int
    tablet: int
    other: int


class DevicesResponse(CamelModel):
    success: bool = True
    data: DeviceData
    percentages: DeviceData
    total: int


class LocationItem(CamelModel):
    country: str
    visitors: int
    page_views: int


class LocationsResponse(CamelModel):
    success: bool = True
    data: list[LocationItem]
    total: int
