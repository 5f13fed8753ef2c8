"""
Identity component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from privacymetrics.core.entities import DeviceType, Session, Visitor


@dataclass(frozen=True)
class IdentityError:
    code: str
    message: str
    field_name: str | None = None


@dataclass(frozen=True)
class ResolveVisitorInput:
    """
    Raw client signals for one beacon.

    client_ip is only ever hashed; it is not stored or logged.
    """

    website_id: str
    client_ip: str | None
    visitor_token: str | None
    seen_at: datetime
    page_view_increment: int = 1
    country: str | None = None
    region: str | None = None
    language: str | None = None


@dataclass(frozen=True)
class ResolveSessionInput:
    website_id: str
    visitor_id: str
    client_session_id: str
    event_at: datetime
    page_increment: int = 1
    duration_increment: int = 0
    device_type: DeviceType = DeviceType.OTHER


@dataclass
class ResolveVisitorOutput:
    visitor: Visitor | None
    errors: list[IdentityError] = field(default_factory=list)
    success: bool = True


@dataclass
class ResolveSessionOutput:
    session: Session | None
    errors: list[IdentityError] = field(default_factory=list)
    success: bool = True
