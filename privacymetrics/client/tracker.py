"""
Tracking client.

Queues events and delivers them to the batch ingestion endpoint.

Key behaviors:
- Flush when the queue reaches batch_size, on the interval timer and on close()
- Transport errors and 5xx responses put the whole batch back at the
  head of the queue
- After a 207, only items that failed with INTERNAL_ERROR are retried;
  validation and not-found failures are dropped
- The queue is bounded; on overflow the oldest events are discarded
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

import httpx

from privacymetrics.client.navigation import NavigationObserver
from privacymetrics.core.errors import ErrorCode
from privacymetrics.rules.models import TrackerRules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackerConfig:
    tracking_code: str
    api_url: str = "http://localhost:8000/api/v1/events"
    batch_size: int = 10
    flush_interval_seconds: float = 5.0
    max_queue_size: int = 1000
    request_timeout_seconds: float = 5.0

    @classmethod
    def from_rules(cls, tracking_code: str, api_url: str, rules: TrackerRules) -> TrackerConfig:
        return cls(
            tracking_code=tracking_code,
            api_url=api_url,
            batch_size=rules.batch_size,
            flush_interval_seconds=rules.flush_interval_seconds,
            max_queue_size=rules.max_queue_size,
            request_timeout_seconds=rules.request_timeout_seconds,
        )

    @property
    def batch_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/batch"


@dataclass(frozen=True)
class FlushResult:
    sent: int = 0
    requeued: int = 0
    dropped: int = 0


def _client_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(5)}"


def _item_errors(response: httpx.Response) -> list[tuple[int, str]] | None:
    """(index, error code) pairs from a batch response, or None when unreadable."""
    try:
        items = response.json()["errors"]
        return [(int(item["index"]), str(item["error"])) for item in items]
    except (ValueError, KeyError, TypeError):
        return None


class TrackerClient:
    def __init__(
        self,
        config: TrackerConfig,
        http_client: httpx.Client | None = None,
        session_id: str | None = None,
        visitor_id: str | None = None,
    ) -> None:
        self._config = config
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=config.request_timeout_seconds)
        self.session_id = session_id or _client_id("sess")
        self.visitor_id = visitor_id or _client_id("vis")

        self._queue: deque[dict[str, Any]] = deque()
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._unsubscribe: Callable[[], None] | None = None

        self._current_url: str | None = None
        self._entry_referrer: str | None = None

    # --- Queue ---

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def track(
        self,
        event_type: str,
        properties: dict[str, Any] | None = None,
        url: str | None = None,
        referrer: str | None = None,
    ) -> None:
        """
        Queue one event.

        Raises:
            ValueError: no URL given and no page has been viewed yet.
        """
        page_url = url or self._current_url
        if not page_url:
            raise ValueError("track() needs a url until page_view() has been called")

        event = {
            "trackingCode": self._config.tracking_code,
            "eventType": event_type,
            "url": page_url,
            "referrer": referrer if referrer is not None else self._entry_referrer,
            "sessionId": self.session_id,
            "visitorId": self.visitor_id,
            "properties": properties,
            "timestamp": datetime.now(UTC).isoformat(),
        }

        with self._lock:
            self._queue.append(event)
            self._trim_locked()
            should_flush = len(self._queue) >= self._config.batch_size

        if should_flush:
            self.flush()

    def page_view(self, url: str, referrer: str | None = None, title: str | None = None) -> None:
        if self._current_url is None and referrer:
            self._entry_referrer = referrer
        self._current_url = url
        properties: dict[str, Any] = {"pathname": urlparse(url).path or "/"}
        if title:
            properties["title"] = title
        self.track("pageview", properties, url=url, referrer=referrer)

    def page_leave(self, duration_ms: int) -> None:
        self.track("page_leave", {"duration": duration_ms})

    def observe(self, observer: NavigationObserver) -> None:
        """Record a pageview for every navigation the observer reports."""
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = observer.subscribe(lambda url, _previous: self.page_view(url))

    def _trim_locked(self) -> None:
        overflow = len(self._queue) - self._config.max_queue_size
        if overflow > 0:
            for _ in range(overflow):
                self._queue.popleft()
            logger.warning("Tracker queue full, dropped %d oldest events", overflow)

    def _requeue(self, events: list[dict[str, Any]]) -> None:
        with self._lock:
            self._queue.extendleft(reversed(events))
            self._trim_locked()

    # --- Delivery ---

    def flush(self) -> FlushResult:
        """Send everything queued as one batch."""
        with self._flush_lock:
            with self._lock:
                events = list(self._queue)
                self._queue.clear()

            if not events:
                return FlushResult()

            try:
                response = self._http.post(self._config.batch_url, json={"events": events})
            except httpx.HTTPError as e:
                logger.warning("Flush of %d events failed, re-queueing: %s", len(events), e)
                self._requeue(events)
                return FlushResult(requeued=len(events))

            return self._handle_response(response, events)

    def _handle_response(self, response: httpx.Response, events: list[dict[str, Any]]) -> FlushResult:
        status = response.status_code

        if status == 201:
            return FlushResult(sent=len(events))

        if status >= 500:
            logger.warning("Server error %d, re-queueing %d events", status, len(events))
            self._requeue(events)
            return FlushResult(requeued=len(events))

        # 207 and an all-failed 400 both carry per-item errors
        item_errors = _item_errors(response) if status in (207, 400) else None
        if item_errors is None or (status != 207 and not item_errors):
            if status == 207:
                # Some items were stored; resending would duplicate them
                logger.warning("Unreadable 207 body, dropping %d events", len(events))
            else:
                logger.warning("Batch rejected with %d, dropping %d events", status, len(events))
            return FlushResult(dropped=len(events))

        retry_indexes = {
            index for index, code in item_errors if code == ErrorCode.INTERNAL_ERROR.value
        }
        retry = [e for i, e in enumerate(events) if i in retry_indexes]
        if retry:
            self._requeue(retry)
        failed = len({index for index, _ in item_errors})
        return FlushResult(
            sent=max(0, len(events) - failed),
            requeued=len(retry),
            dropped=failed - len(retry),
        )

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the interval flush thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._flush_loop, daemon=True)
        self._thread.start()
        logger.debug("Tracker started (flush interval: %.1fs)", self._config.flush_interval_seconds)

    def _flush_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._config.flush_interval_seconds):
            try:
                self.flush()
            except Exception:
                logger.exception("Error in tracker flush loop")

    def close(self) -> FlushResult:
        """Stop the flush thread and send whatever is left."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self._config.request_timeout_seconds + 1.0)
            self._thread = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        result = self.flush()
        if self._owns_http:
            self._http.close()
        return result

    def __enter__(self) -> TrackerClient:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
