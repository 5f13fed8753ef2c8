"""
Domain entities for PrivacyMetrics.

The tracked population of a website is modelled as:
- Website: a registered site, addressed publicly by its tracking code
- Visitor: a pseudonymous fingerprint, never a raw IP
- Session: a contiguous run of activity by one visitor
- Event: one recorded interaction
- DailyRollup: cached per-day pageview count
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PAGEVIEW = "pageview"
PAGE_LEAVE = "page_leave"


class DeviceType(str, Enum):
    """Coarse device class derived from the User-Agent."""

    MOBILE = "mobile"
    DESKTOP = "desktop"
    TABLET = "tablet"
    OTHER = "other"


class Website(BaseModel):
    id: str
    user_id: str | None = None
    domain: str
    tracking_code: str
    is_active: bool = True
    created_at: datetime


class Visitor(BaseModel):
    """
    Pseudonymous visitor.

    Unique per (website_id, fingerprint). page_views counts pageview
    events only; last_seen is monotonically non-decreasing.
    """

    id: str
    website_id: str
    fingerprint: str
    first_seen: datetime
    last_seen: datetime
    page_views: int = 0
    country: str | None = None
    region: str | None = None
    language: str | None = None


class Session(BaseModel):
    """
    Stored session segment.

    A client session token that goes idle for longer than the timeout
    is split into numbered segments; `id` is the segment identifier
    and `client_session_id` the raw token sent by the tracker.
    """

    id: str
    website_id: str
    visitor_id: str
    client_session_id: str
    segment: int = 0
    started_at: datetime
    last_activity_at: datetime
    page_count: int = 0
    duration_seconds: int = 0
    device_type: DeviceType = DeviceType.OTHER


class Event(BaseModel):
    """Recorded interaction. Events are append-only."""

    model_config = ConfigDict(frozen=True)

    id: str
    website_id: str
    session_id: str
    visitor_id: str | None = None
    event_type: str
    page_url: str
    referrer: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    device_type: DeviceType = DeviceType.OTHER
    country: str | None = None
    properties: dict[str, Any] | None = None
    timestamp: datetime
    received_at: datetime | None = None


class DailyRollup(BaseModel):
    website_id: str
    day: date
    page_views: int = Field(0, ge=0)
    updated_at: datetime
