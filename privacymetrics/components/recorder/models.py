"""
Recorder component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from privacymetrics.core.entities import Event
from privacymetrics.core.errors import ErrorCode


@dataclass(frozen=True)
class RecorderError:
    """Field-level validation error."""

    code: str
    message: str
    field_name: str | None = None


@dataclass(frozen=True)
class ValidatedBeacon:
    tracking_code: str
    event_type: str
    url: str
    session_id: str
    visitor_id: str
    timestamp: datetime
    referrer: str | None = None
    properties: dict[str, Any] | None = None
    timezone: str | None = None
    language: str | None = None


@dataclass(frozen=True)
class RecordEventInput:
    """
    One beacon as received.

    data is the decoded JSON object; client_ip and user_agent come from
    the transport and are never stored verbatim.
    """

    data: dict[str, Any]
    client_ip: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class RecordBatchInput:
    items: list[Any]
    client_ip: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class ListEventsInput:
    tracking_code: str
    event_type: str | None = None
    limit: int = 100
    offset: int = 0


@dataclass(frozen=True)
class RecordedEventRef:
    id: str
    website_id: str
    event_type: str
    page_url: str
    referrer: str | None
    session_id: str
    visitor_id: str | None
    timestamp: datetime

    @classmethod
    def from_event(cls, event: Event) -> RecordedEventRef:
        return cls(
            id=event.id,
            website_id=event.website_id,
            event_type=event.event_type,
            page_url=event.page_url,
            referrer=event.referrer,
            session_id=event.session_id,
            visitor_id=event.visitor_id,
            timestamp=event.timestamp,
        )


@dataclass
class RecordOutput:
    event: RecordedEventRef | None
    errors: list[RecorderError] = field(default_factory=list)
    error_code: ErrorCode | None = None
    success: bool = True


@dataclass(frozen=True)
class BatchItemError:
    index: int
    error: str
    message: str


@dataclass
class BatchOutput:
    events: list[RecordedEventRef] = field(default_factory=list)
    errors: list[BatchItemError] = field(default_factory=list)
    status_code: int = 201

    @property
    def events_created(self) -> int:
        return len(self.events)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class ListEventsOutput:
    events: list[Event] = field(default_factory=list)
    total: int = 0
    limit: int = 100
    offset: int = 0
    errors: list[RecorderError] = field(default_factory=list)
    error_code: ErrorCode | None = None
    success: bool = True

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.events) < self.total
