"""
Event ingestion API for server-side integrations.

These routes carry no authentication of their own; deploy them behind
whatever access control the integration needs. Unlike the public beacon
endpoint they report outcomes:
201 on success, 400 VALIDATION_ERROR, 404 NOT_FOUND, and 207 for a
partially successful batch.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from privacymetrics.api.deps import get_client_ip, get_recorder, get_rules, get_user_agent
from privacymetrics.api.errors import ApiError
from privacymetrics.api.schemas import (
    BatchItemErrorResponse,
    BatchRequest,
    BatchResponse,
    EventListItem,
    EventListResponse,
    EventResponse,
    Pagination,
)
from privacymetrics.components.recorder import EventRecorder, RecordedEventRef
from privacymetrics.core.errors import ErrorCode
from privacymetrics.rules.models import Rules

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(ref: RecordedEventRef) -> EventResponse:
    return EventResponse(
        id=ref.id,
        website_id=ref.website_id,
        event_type=ref.event_type,
        page_url=ref.page_url,
        referrer=ref.referrer,
        session_id=ref.session_id,
        visitor_id=ref.visitor_id,
        timestamp=ref.timestamp,
    )


@router.post("", status_code=201, response_model=EventResponse)
def create_event(
    body: dict[str, Any] = Body(...),
    client_ip: str | None = Depends(get_client_ip),
    user_agent: str | None = Depends(get_user_agent),
    recorder: EventRecorder = Depends(get_recorder),
) -> EventResponse:
    result = recorder.record(body, client_ip=client_ip, user_agent=user_agent)

    if result.event is None:
        if result.error_code == ErrorCode.NOT_FOUND:
            raise ApiError(ErrorCode.NOT_FOUND, "Website not found")
        raise ApiError(
            ErrorCode.VALIDATION_ERROR,
            "Invalid event data",
            details=[{"field": e.field_name, "code": e.code, "message": e.message} for e in result.errors],
        )

    return _to_response(result.event)


@router.post("/batch", response_model=BatchResponse)
def create_batch(
    body: BatchRequest,
    client_ip: str | None = Depends(get_client_ip),
    user_agent: str | None = Depends(get_user_agent),
    recorder: EventRecorder = Depends(get_recorder),
    rules: Rules = Depends(get_rules),
) -> JSONResponse:
    max_size = rules.ingest.max_batch_size
    if len(body.events) > max_size:
        raise ApiError(ErrorCode.VALIDATION_ERROR, f"Batch exceeds {max_size} events")

    result = recorder.record_batch(body.events, client_ip=client_ip, user_agent=user_agent)

    if result.errors:
        message = f"Created {result.events_created} events with {len(result.errors)} errors"
    else:
        message = f"Successfully created {result.events_created} events"

    response = BatchResponse(
        success=result.success,
        events_created=result.events_created,
        events=[_to_response(ref) for ref in result.events],
        errors=[
            BatchItemErrorResponse(index=e.index, error=e.error, message=e.message)
            for e in result.errors
        ]
        or None,
        message=message,
    )
    return JSONResponse(
        status_code=result.status_code,
        content=response.model_dump(mode="json", by_alias=True),
    )


@router.get("", response_model=EventListResponse)
def list_events(
    tracking_code: str = Query(..., alias="trackingCode", min_length=1),
    event_type: str | None = Query(None, alias="eventType"),
    limit: int = Query(100, ge=1),
    offset: int = Query(0, ge=0),
    recorder: EventRecorder = Depends(get_recorder),
) -> EventListResponse:
    result = recorder.list_events(tracking_code, event_type=event_type, limit=limit, offset=offset)

    if not result.success:
        if result.error_code == ErrorCode.NOT_FOUND:
            raise ApiError(ErrorCode.NOT_FOUND, "Website not found")
        raise ApiError(ErrorCode.VALIDATION_ERROR, "; ".join(e.message for e in result.errors))

    return EventListResponse(
        events=[
            EventListItem(
                id=e.id,
                event_type=e.event_type,
                page_url=e.page_url,
                referrer=e.referrer,
                session_id=e.session_id,
                visitor_id=e.visitor_id,
                properties=e.properties,
                timestamp=e.timestamp,
            )
            for e in result.events
        ],
        pagination=Pagination(
            total=result.total,
            limit=result.limit,
            offset=result.offset,
            has_more=result.has_more,
        ),
    )
