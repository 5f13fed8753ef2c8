"""
Recorder component - beacon validation and event recording.
"""

from ._impl import (
    EventRecorder,
    RecorderConfig,
    batch_status,
    create_event_recorder,
    is_valid_url,
    page_leave_seconds,
    validate_beacon,
    validate_event_type,
    validate_page_leave_duration,
    validate_page_url,
    validate_properties,
    validate_referrer,
    validate_timestamp,
    validate_tracking_code,
)
from .component import run_list_events, run_record, run_record_batch
from .models import (
    BatchItemError,
    BatchOutput,
    ListEventsInput,
    ListEventsOutput,
    RecordBatchInput,
    RecordedEventRef,
    RecordEventInput,
    RecorderError,
    RecordOutput,
    ValidatedBeacon,
)

__all__ = [
    # Entry points
    "run_list_events",
    "run_record",
    "run_record_batch",
    # Models
    "BatchItemError",
    "BatchOutput",
    "ListEventsInput",
    "ListEventsOutput",
    "RecordBatchInput",
    "RecordEventInput",
    "RecordOutput",
    "RecordedEventRef",
    "RecorderError",
    "ValidatedBeacon",
    # Service
    "EventRecorder",
    "RecorderConfig",
    "batch_status",
    "create_event_recorder",
    "is_valid_url",
    "page_leave_seconds",
    "validate_beacon",
    "validate_event_type",
    "validate_page_leave_duration",
    "validate_page_url",
    "validate_properties",
    "validate_referrer",
    "validate_timestamp",
    "validate_tracking_code",
]
