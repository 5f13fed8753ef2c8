"""
Public beacon endpoint used by the tracking snippet.

The response is always 204 with no body for a parseable request, so
neither validation failures nor unknown tracking codes are observable
from outside. Outcomes are only logged.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool

from privacymetrics.api.deps import get_client_ip, get_recorder, get_rules, get_user_agent
from privacymetrics.components.recorder import EventRecorder
from privacymetrics.rules.models import Rules

logger = logging.getLogger(__name__)

router = APIRouter()


def _record_payload(
    payload: Any,
    recorder: EventRecorder,
    max_batch_size: int,
    client_ip: str | None,
    user_agent: str | None,
) -> None:
    if isinstance(payload, dict) and isinstance(payload.get("events"), list):
        items = payload["events"][:max_batch_size]
        if len(payload["events"]) > max_batch_size:
            logger.info("Beacon batch truncated to %d events", max_batch_size)
        result = recorder.record_batch(items, client_ip=client_ip, user_agent=user_agent)
        if result.errors:
            logger.debug("Beacon batch: %d recorded, %d dropped", result.events_created, len(result.errors))
    elif isinstance(payload, dict):
        result_one = recorder.record(payload, client_ip=client_ip, user_agent=user_agent)
        if result_one.event is None:
            logger.debug("Beacon dropped: %s", [e.code for e in result_one.errors])
    else:
        logger.debug("Beacon dropped: payload is not a JSON object")


@router.post("", status_code=204, response_class=Response)
async def track(
    request: Request,
    client_ip: str | None = Depends(get_client_ip),
    user_agent: str | None = Depends(get_user_agent),
    recorder: EventRecorder = Depends(get_recorder),
    rules: Rules = Depends(get_rules),
) -> Response:
    # sendBeacon posts text/plain, so the body is decoded by hand.
    raw = await request.body()
    try:
        payload = json.loads(raw) if raw else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.debug("Beacon dropped: body is not JSON")
        return Response(status_code=204)

    try:
        await run_in_threadpool(
            _record_payload,
            payload,
            recorder,
            rules.ingest.max_batch_size,
            client_ip,
            user_agent,
        )
    except Exception:
        logger.exception("Failed to record beacon")

    return Response(status_code=204)


@router.get("/health")
def track_health() -> dict[str, Any]:
    return {"status": "ok", "service": "tracking"}
