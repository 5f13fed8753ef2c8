"""Error codes and domain exceptions shared by components and the API."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_HTTP_STATUS = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.PARTIAL_FAILURE: 207,
    ErrorCode.INTERNAL_ERROR: 500,
}


def http_status_for(code: ErrorCode | str) -> int:
    """HTTP status for an error code; unknown codes map to 500."""
    try:
        return _HTTP_STATUS[ErrorCode(code)]
    except ValueError:
        return 500


class PrivacyMetricsError(Exception):
    """Base class for domain errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR


class WebsiteNotFoundError(PrivacyMetricsError):
    """No active website matches the given tracking code or id."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, key: str) -> None:
        super().__init__(f"Website not found: {key}")
        self.key = key


class StoreError(PrivacyMetricsError):
    """Persistence failure; wraps the underlying driver error."""

    code = ErrorCode.INTERNAL_ERROR
