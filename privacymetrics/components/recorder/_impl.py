"""
Event recording: beacon validation and the single write path.

Key behaviors:
- Validation accumulates every field error before rejecting
- Website lookup, visitor upsert, session upsert, event insert and the
  rollup bump for one beacon share one transaction
- Unknown or inactive tracking codes are dropped with a warning and a
  not_found result, never an exception
- Batch items are recorded independently; one failure never aborts the rest
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse
from uuid import uuid4

from privacymetrics.components.identity import IdentityConfig, IdentityResolver
from privacymetrics.core.entities import PAGE_LEAVE, PAGEVIEW, Event
from privacymetrics.core.errors import ErrorCode, http_status_for
from privacymetrics.core.services.attribution import parse_utm_params
from privacymetrics.core.services.location import estimate_location
from privacymetrics.core.services.user_agent import classify_device
from privacymetrics.rules.models import IngestRules

from .models import (
    BatchItemError,
    BatchOutput,
    ListEventsOutput,
    RecordedEventRef,
    RecorderError,
    RecordOutput,
    ValidatedBeacon,
)
from .ports import TimePort, TrackingStorePort

logger = logging.getLogger(__name__)

TRACKING_CODE_PREFIX = "pm-"
MAX_ID_LENGTH = 128
MAX_LIST_LIMIT = 1000


# --- Configuration ---


@dataclass(frozen=True)
class RecorderConfig:
    allowed_event_types: tuple[str, ...] = (
        "pageview",
        "click",
        "custom",
        "page_leave",
        "page_hide",
        "page_show",
        "scroll",
    )
    max_url_length: int = 2048
    max_properties_bytes: int = 8192
    max_timestamp_age_seconds: int = 86400
    max_timestamp_future_seconds: int = 300
    max_page_leave_seconds: int = 86400
    rollup_cache_enabled: bool = True

    @classmethod
    def from_rules(cls, ingest: IngestRules, rollup_cache_enabled: bool = True) -> RecorderConfig:
        return cls(
            allowed_event_types=tuple(ingest.allowed_event_types),
            max_url_length=ingest.max_url_length,
            max_properties_bytes=ingest.max_properties_bytes,
            max_timestamp_age_seconds=ingest.max_timestamp_age_seconds,
            max_timestamp_future_seconds=ingest.max_timestamp_future_seconds,
            max_page_leave_seconds=ingest.max_timestamp_age_seconds,
            rollup_cache_enabled=rollup_cache_enabled,
        )


DEFAULT_CONFIG = RecorderConfig()


# --- Validation functions ---


def is_valid_url(value: Any, max_length: int = 2048) -> bool:
    if not isinstance(value, str) or not value or len(value) > max_length:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_tracking_code(code: Any) -> list[RecorderError]:
    if not isinstance(code, str) or not code.strip():
        return [RecorderError("tracking_code_required", "trackingCode is required", "trackingCode")]
    if not code.startswith(TRACKING_CODE_PREFIX) or len(code) > MAX_ID_LENGTH:
        return [
            RecorderError(
                "invalid_tracking_code",
                f"trackingCode must start with '{TRACKING_CODE_PREFIX}'",
                "trackingCode",
            )
        ]
    return []


def validate_event_type(
    event_type: Any,
    config: RecorderConfig = DEFAULT_CONFIG,
) -> list[RecorderError]:
    if event_type is None:
        return [RecorderError("event_type_required", "eventType is required", "eventType")]
    if event_type not in config.allowed_event_types:
        return [
            RecorderError(
                "invalid_event_type",
                f"eventType must be one of: {', '.join(config.allowed_event_types)}",
                "eventType",
            )
        ]
    return []


def validate_page_url(url: Any, config: RecorderConfig = DEFAULT_CONFIG) -> list[RecorderError]:
    if url is None or url == "":
        return [RecorderError("url_required", "url is required", "url")]
    if not is_valid_url(url, config.max_url_length):
        return [RecorderError("invalid_url", "url must be a valid http(s) URL", "url")]
    return []


def validate_referrer(referrer: Any, config: RecorderConfig = DEFAULT_CONFIG) -> list[RecorderError]:
    if referrer is None or referrer == "":
        return []
    if not is_valid_url(referrer, config.max_url_length):
        return [RecorderError("invalid_referrer", "referrer must be a valid URL or null", "referrer")]
    return []


def validate_client_id(value: Any, field_name: str) -> list[RecorderError]:
    """Validate a client-generated opaque id (sessionId/visitorId)."""
    prefix = "session_id" if field_name == "sessionId" else "visitor_id"
    if not isinstance(value, str) or not value.strip():
        return [RecorderError(f"{prefix}_required", f"{field_name} is required", field_name)]
    if len(value) > MAX_ID_LENGTH:
        return [RecorderError(f"invalid_{prefix}", f"{field_name} is too long", field_name)]
    # '#' is reserved for server-side session segment ids
    if field_name == "sessionId" and "#" in value:
        return [RecorderError("invalid_session_id", "sessionId must not contain '#'", field_name)]
    return []


def validate_properties(
    properties: Any,
    config: RecorderConfig = DEFAULT_CONFIG,
) -> list[RecorderError]:
    if properties is None:
        return []
    if not isinstance(properties, dict):
        return [RecorderError("invalid_properties", "properties must be an object or null", "properties")]
    try:
        size = len(json.dumps(properties).encode())
    except (TypeError, ValueError):
        return [RecorderError("invalid_properties", "properties must be JSON-serialisable", "properties")]
    if size > config.max_properties_bytes:
        return [
            RecorderError(
                "properties_too_large",
                f"properties exceed {config.max_properties_bytes} bytes",
                "properties",
            )
        ]
    return []


def validate_page_leave_duration(
    event_type: Any,
    properties: Any,
    config: RecorderConfig = DEFAULT_CONFIG,
) -> list[RecorderError]:
    """A page_leave `duration` (ms) must be finite and at most max_page_leave_seconds."""
    if event_type != PAGE_LEAVE or not isinstance(properties, dict):
        return []
    duration = properties.get("duration")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return []
    if isinstance(duration, float) and not math.isfinite(duration):
        return [RecorderError("invalid_properties", "properties.duration must be finite", "properties")]
    if duration > config.max_page_leave_seconds * 1000:
        return [
            RecorderError(
                "invalid_properties",
                f"properties.duration must be at most {config.max_page_leave_seconds * 1000} ms",
                "properties",
            )
        ]
    return []


def validate_timestamp(
    ts: Any,
    now: datetime,
    config: RecorderConfig = DEFAULT_CONFIG,
) -> tuple[datetime | None, list[RecorderError]]:
    """
    Parse the optional client timestamp.

    Accepts ISO 8601 strings and Unix seconds or milliseconds. Missing
    timestamps default to the receive time.
    """
    if ts is None:
        return now, []

    parsed: datetime | None = None

    if isinstance(ts, bool):
        parsed = None
    elif isinstance(ts, str):
        try:
            parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            return None, [RecorderError("invalid_timestamp", "timestamp must be ISO 8601", "timestamp")]
    elif isinstance(ts, (int, float)):
        try:
            # Values past 1e12 are milliseconds
            parsed = datetime.fromtimestamp(ts / 1000 if ts > 1e12 else ts, tz=UTC)
        except (ValueError, OSError, OverflowError):
            return None, [RecorderError("invalid_timestamp", "Invalid Unix timestamp", "timestamp")]

    if parsed is None:
        return None, [
            RecorderError(
                "invalid_timestamp",
                "timestamp must be an ISO string or Unix timestamp",
                "timestamp",
            )
        ]

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        parsed = parsed.astimezone(UTC)
    except (ValueError, OverflowError):
        # Offsets can push year 1 or 9999 out of range
        return None, [RecorderError("invalid_timestamp", "timestamp is out of range", "timestamp")]

    age = (now - parsed).total_seconds()
    if age > config.max_timestamp_age_seconds:
        return None, [
            RecorderError(
                "timestamp_too_old",
                f"timestamp is too old (max {config.max_timestamp_age_seconds}s)",
                "timestamp",
            )
        ]
    if age < -config.max_timestamp_future_seconds:
        return None, [
            RecorderError(
                "timestamp_in_future",
                f"timestamp is too far in future (max {config.max_timestamp_future_seconds}s)",
                "timestamp",
            )
        ]

    return parsed, []


def _optional_str(value: Any, max_length: int = 64) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()[:max_length]
    return None


def validate_beacon(
    data: Any,
    now: datetime,
    config: RecorderConfig = DEFAULT_CONFIG,
) -> tuple[ValidatedBeacon | None, list[RecorderError]]:
    if not isinstance(data, dict):
        return None, [RecorderError("invalid_body", "event must be a JSON object")]

    errors: list[RecorderError] = []
    errors.extend(validate_tracking_code(data.get("trackingCode")))
    errors.extend(validate_event_type(data.get("eventType"), config))
    errors.extend(validate_page_url(data.get("url"), config))
    errors.extend(validate_referrer(data.get("referrer"), config))
    errors.extend(validate_client_id(data.get("sessionId"), "sessionId"))
    errors.extend(validate_client_id(data.get("visitorId"), "visitorId"))
    errors.extend(validate_properties(data.get("properties"), config))
    errors.extend(
        validate_page_leave_duration(data.get("eventType"), data.get("properties"), config)
    )

    ts, ts_errors = validate_timestamp(data.get("timestamp"), now, config)
    errors.extend(ts_errors)

    if errors or ts is None:
        return None, errors

    return (
        ValidatedBeacon(
            tracking_code=data["trackingCode"],
            event_type=data["eventType"],
            url=data["url"],
            session_id=data["sessionId"],
            visitor_id=data["visitorId"],
            timestamp=ts,
            referrer=data.get("referrer") or None,
            properties=data.get("properties"),
            timezone=_optional_str(data.get("timezone")),
            language=_optional_str(data.get("language"), 35),
        ),
        [],
    )


def page_leave_seconds(
    event_type: str,
    properties: dict[str, Any] | None,
    max_seconds: int = DEFAULT_CONFIG.max_page_leave_seconds,
) -> int:
    """
    Seconds to add to the session for a page_leave event's `duration` (ms).

    Clamped to max_seconds so the running session total stays within a
    SQLite INTEGER.
    """
    if event_type != PAGE_LEAVE or not properties:
        return 0
    duration = properties.get("duration")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return 0
    if isinstance(duration, float) and not math.isfinite(duration):
        return 0
    if duration <= 0:
        return 0
    if duration >= max_seconds * 1000:
        return max_seconds
    return math.floor(duration / 1000 + 0.5)


def batch_status(created: int, errors: list[BatchItemError]) -> int:
    """
    HTTP status for a batch result.

    201 when every item was recorded, 207 when some were, otherwise the
    shared status of the failures (400 when they disagree).
    """
    if not errors:
        return 201
    if created > 0:
        return http_status_for(ErrorCode.PARTIAL_FAILURE)
    codes = {e.error for e in errors}
    if len(codes) == 1:
        return http_status_for(codes.pop())
    return http_status_for(ErrorCode.VALIDATION_ERROR)


def _summarise(errors: list[RecorderError]) -> str:
    return "; ".join(e.message for e in errors)


# --- Recorder Service ---


class EventRecorder:
    """Validates beacons and writes them through one unit of work each."""

    def __init__(
        self,
        store: TrackingStorePort,
        identity: IdentityResolver,
        time_port: TimePort,
        config: RecorderConfig | None = None,
    ) -> None:
        self._store = store
        self._identity = identity
        self._time = time_port
        self._config = config or DEFAULT_CONFIG

    def record(
        self,
        data: Any,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> RecordOutput:
        """
        Record one beacon.

        Storage failures propagate; the caller decides whether they are
        fatal (single event) or reported per item (batch).
        """
        now = self._time.now_utc()
        beacon, errors = validate_beacon(data, now, self._config)
        if beacon is None:
            return RecordOutput(
                event=None,
                errors=errors,
                error_code=ErrorCode.VALIDATION_ERROR,
                success=False,
            )

        is_pageview = beacon.event_type == PAGEVIEW
        location = estimate_location(beacon.timezone)
        device = classify_device(user_agent)
        utm = parse_utm_params(beacon.url)

        with self._store.unit_of_work() as uow:
            website = uow.websites.get_by_tracking_code(beacon.tracking_code)
            if website is None:
                logger.warning("Dropping beacon for unknown tracking code %s", beacon.tracking_code)
                return RecordOutput(
                    event=None,
                    errors=[RecorderError("not_found", "Website not found", "trackingCode")],
                    error_code=ErrorCode.NOT_FOUND,
                    success=False,
                )

            visitor = self._identity.resolve_visitor(
                uow,
                website_id=website.id,
                client_ip=client_ip,
                visitor_token=beacon.visitor_id,
                seen_at=beacon.timestamp,
                page_view_increment=1 if is_pageview else 0,
                country=location.country,
                region=location.region,
                language=beacon.language,
            )
            session = self._identity.resolve_session(
                uow,
                website_id=website.id,
                visitor_id=visitor.id,
                client_session_id=beacon.session_id,
                event_at=beacon.timestamp,
                page_increment=1 if is_pageview else 0,
                duration_increment=page_leave_seconds(
                    beacon.event_type, beacon.properties, self._config.max_page_leave_seconds
                ),
                device_type=device,
            )

            event = uow.events.append(
                Event(
                    id=uuid4().hex,
                    website_id=website.id,
                    session_id=session.id,
                    visitor_id=visitor.id,
                    event_type=beacon.event_type,
                    page_url=beacon.url,
                    referrer=beacon.referrer,
                    utm_source=utm.source,
                    utm_medium=utm.medium,
                    utm_campaign=utm.campaign,
                    device_type=session.device_type,
                    country=location.country,
                    properties=beacon.properties,
                    timestamp=beacon.timestamp,
                    received_at=now,
                )
            )

            if is_pageview and self._config.rollup_cache_enabled:
                uow.rollups.increment_if_present(website.id, beacon.timestamp.date(), 1, now)

            uow.commit()

        return RecordOutput(event=RecordedEventRef.from_event(event))

    def record_batch(
        self,
        items: list[Any],
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> BatchOutput:
        output = BatchOutput()

        for index, item in enumerate(items):
            try:
                result = self.record(item, client_ip=client_ip, user_agent=user_agent)
            except Exception:
                logger.exception("Failed to record batch item %d", index)
                output.errors.append(
                    BatchItemError(index, ErrorCode.INTERNAL_ERROR.value, "Failed to record event")
                )
                continue

            if result.event is not None:
                output.events.append(result.event)
            else:
                code = result.error_code or ErrorCode.VALIDATION_ERROR
                output.errors.append(BatchItemError(index, code.value, _summarise(result.errors)))

        output.status_code = batch_status(output.events_created, output.errors)
        if output.errors:
            logger.info(
                "Batch recorded %d of %d events",
                output.events_created,
                len(items),
            )
        return output

    def list_events(
        self,
        tracking_code: str,
        event_type: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> ListEventsOutput:
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        offset = max(0, offset)

        if event_type is not None:
            type_errors = validate_event_type(event_type, self._config)
            if type_errors:
                return ListEventsOutput(
                    limit=limit,
                    offset=offset,
                    errors=type_errors,
                    error_code=ErrorCode.VALIDATION_ERROR,
                    success=False,
                )

        with self._store.unit_of_work(read_only=True) as uow:
            website = uow.websites.get_by_tracking_code(tracking_code)
            if website is None:
                return ListEventsOutput(
                    limit=limit,
                    offset=offset,
                    errors=[RecorderError("not_found", "Website not found", "trackingCode")],
                    error_code=ErrorCode.NOT_FOUND,
                    success=False,
                )
            events, total = uow.events.list_recent(website.id, event_type, limit, offset)

        return ListEventsOutput(events=events, total=total, limit=limit, offset=offset)


# --- Factory ---


def create_event_recorder(
    store: TrackingStorePort,
    time_port: TimePort,
    salt: str,
    session_timeout_minutes: int = 30,
    config: RecorderConfig | None = None,
) -> EventRecorder:
    identity = IdentityResolver(IdentityConfig(salt=salt, session_timeout_minutes=session_timeout_minutes))
    return EventRecorder(store=store, identity=identity, time_port=time_port, config=config)
