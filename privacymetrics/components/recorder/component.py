"""
Recorder component - the only write path into the event log.

Invariants:
- I1: A beacon is either fully recorded (visitor, session, event, rollup) or not at all
- I2: Unknown tracking codes produce a NOT_FOUND result and no writes
- I3: Events are immutable once appended
- I4: A failing batch item never prevents the others from being recorded
"""

from __future__ import annotations

from ._impl import RecorderConfig, create_event_recorder
from .models import (
    BatchOutput,
    ListEventsInput,
    ListEventsOutput,
    RecordBatchInput,
    RecordEventInput,
    RecordOutput,
)
from .ports import TimePort, TrackingStorePort


def run_record(
    inp: RecordEventInput,
    *,
    store: TrackingStorePort,
    time_port: TimePort,
    salt: str,
    session_timeout_minutes: int = 30,
    config: RecorderConfig | None = None,
) -> RecordOutput:
    """
    Record one beacon.

    Args:
        inp: Raw beacon plus transport-level client signals.
        store: Tracking store port.
        time_port: Clock used for receive time and timestamp checks.
        salt: Server-side secret mixed into the IP hash.

    Returns:
        RecordOutput with the recorded event reference, or errors and the
        taxonomy code (VALIDATION_ERROR / NOT_FOUND).
    """
    recorder = create_event_recorder(store, time_port, salt, session_timeout_minutes, config)
    return recorder.record(inp.data, client_ip=inp.client_ip, user_agent=inp.user_agent)


def run_record_batch(
    inp: RecordBatchInput,
    *,
    store: TrackingStorePort,
    time_port: TimePort,
    salt: str,
    session_timeout_minutes: int = 30,
    config: RecorderConfig | None = None,
) -> BatchOutput:
    recorder = create_event_recorder(store, time_port, salt, session_timeout_minutes, config)
    return recorder.record_batch(inp.items, client_ip=inp.client_ip, user_agent=inp.user_agent)


def run_list_events(
    inp: ListEventsInput,
    *,
    store: TrackingStorePort,
    time_port: TimePort,
    config: RecorderConfig | None = None,
) -> ListEventsOutput:
    # Listing never hashes anything, so the salt is irrelevant here.
    recorder = create_event_recorder(store, time_port, salt="", config=config)
    return recorder.list_events(inp.tracking_code, inp.event_type, inp.limit, inp.offset)
