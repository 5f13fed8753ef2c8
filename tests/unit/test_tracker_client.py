"""
Tests for the Python tracking client.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from privacymetrics.client import FlushResult, NavigationHistory, TrackerClient, TrackerConfig
from privacymetrics.rules.models import TrackerRules

API_URL = "http://analytics.test/api/v1/events"


class RecordingTransport:
    """Collects posted batches and answers with queued responses."""

    def __init__(self) -> None:
        self.batches: list[list[dict[str, Any]]] = []
        self.responses: list[httpx.Response | Exception] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.batches.append(body["events"])
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return httpx.Response(201, json={"success": True, "eventsCreated": len(body["events"])})


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def tracker(transport: RecordingTransport) -> TrackerClient:
    config = TrackerConfig(tracking_code="pm-test", api_url=API_URL, batch_size=3, max_queue_size=5)
    http = httpx.Client(transport=httpx.MockTransport(transport))
    return TrackerClient(config, http_client=http, session_id="sess-1", visitor_id="vis-1")


class TestQueueing:
    def test_page_view_shape(self, tracker: TrackerClient, transport: RecordingTransport) -> None:
        tracker.page_view("https://example.com/pricing?x=1", referrer="https://google.com/", title="Pricing")
        tracker.flush()

        (event,) = transport.batches[0]
        assert event["trackingCode"] == "pm-test"
        assert event["eventType"] == "pageview"
        assert event["url"] == "https://example.com/pricing?x=1"
        assert event["referrer"] == "https://google.com/"
        assert event["sessionId"] == "sess-1"
        assert event["visitorId"] == "vis-1"
        assert event["properties"] == {"pathname": "/pricing", "title": "Pricing"}
        assert event["timestamp"]

    def test_track_uses_current_page(self, tracker: TrackerClient, transport: RecordingTransport) -> None:
        tracker.page_view("https://example.com/a")
        tracker.track("click", {"target": "signup"})
        tracker.flush()

        assert transport.batches[0][1]["url"] == "https://example.com/a"

    def test_track_needs_a_url(self, tracker: TrackerClient) -> None:
        with pytest.raises(ValueError):
            tracker.track("click")

    def test_flushes_at_batch_size(self, tracker: TrackerClient, transport: RecordingTransport) -> None:
        for i in range(3):
            tracker.track("pageview", url=f"https://example.com/{i}")

        assert len(transport.batches) == 1
        assert tracker.pending == 0

    def test_queue_drops_oldest(self, tracker: TrackerClient, transport: RecordingTransport) -> None:
        transport.responses = [httpx.ConnectError("down")] * 10
        for i in range(7):
            tracker.track("pageview", url=f"https://example.com/{i}")

        assert tracker.pending == 5

    def test_generated_ids(self, transport: RecordingTransport) -> None:
        client = TrackerClient(
            TrackerConfig(tracking_code="pm-x", api_url=API_URL),
            http_client=httpx.Client(transport=httpx.MockTransport(transport)),
        )
        assert client.session_id.startswith("sess-")
        assert client.visitor_id.startswith("vis-")
        assert "#" not in client.session_id

    def test_empty_flush(self, tracker: TrackerClient, transport: RecordingTransport) -> None:
        assert tracker.flush() == FlushResult()
        assert transport.batches == []


class TestDelivery:
    def test_posts_to_batch_endpoint(self, transport: RecordingTransport) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return transport(request)

        client = TrackerClient(
            TrackerConfig(tracking_code="pm-x", api_url=API_URL + "/"),
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        client.track("pageview", url="https://example.com/")
        client.flush()

        assert seen == [API_URL + "/batch"]

    def test_transport_error_requeues(self, tracker: TrackerClient, transport: RecordingTransport) -> None:
        transport.responses = [httpx.ConnectError("down")]
        tracker.track("pageview", url="https://example.com/1")
        tracker.track("pageview", url="https://example.com/2")

        result = tracker.flush()

        assert result == FlushResult(requeued=2)
        assert tracker.pending == 2

        assert tracker.flush() == FlushResult(sent=2)
        assert [e["url"] for e in transport.batches[1]] == [
            "https://example.com/1",
            "https://example.com/2",
        ]

    def test_server_error_requeues_in_order(
        self, tracker: TrackerClient, transport: RecordingTransport
    ) -> None:
        transport.responses = [httpx.Response(503)]
        tracker.track("pageview", url="https://example.com/1")
        tracker.flush()
        tracker.track("pageview", url="https://example.com/2")
        tracker.flush()

        assert [e["url"] for e in transport.batches[1]] == [
            "https://example.com/1",
            "https://example.com/2",
        ]

    def test_client_error_drops(self, tracker: TrackerClient, transport: RecordingTransport) -> None:
        transport.responses = [httpx.Response(400, json={"error": "VALIDATION_ERROR"})]
        tracker.track("pageview", url="https://example.com/1")

        assert tracker.flush() == FlushResult(dropped=1)
        assert tracker.pending == 0

    def test_partial_failure_retries_internal_errors_only(
        self, tracker: TrackerClient, transport: RecordingTransport
    ) -> None:
        transport.responses = [
            httpx.Response(
                207,
                json={
                    "success": False,
                    "eventsCreated": 1,
                    "errors": [
                        {"index": 0, "error": "VALIDATION_ERROR", "message": "bad url"},
                        {"index": 2, "error": "INTERNAL_ERROR", "message": "Failed to record event"},
                    ],
                },
            )
        ]
        tracker.track("pageview", url="https://example.com/0")
        tracker.track("pageview", url="https://example.com/1")
        # The third track() triggers the flush
        tracker.track("pageview", url="https://example.com/2")

        assert tracker.pending == 1
        tracker.flush()
        assert [e["url"] for e in transport.batches[1]] == ["https://example.com/2"]


    def test_unreadable_partial_response_is_not_resent(
        self, tracker: TrackerClient, transport: RecordingTransport
    ) -> None:
        transport.responses = [httpx.Response(207, content=b"<html>proxy page</html>")]
        tracker.track("pageview", url="https://example.com/1")

        assert tracker.flush() == FlushResult(dropped=1)
        assert tracker.pending == 0

    def test_all_failed_batch_retries_internal_errors(
        self, tracker: TrackerClient, transport: RecordingTransport
    ) -> None:
        transport.responses = [
            httpx.Response(
                400,
                json={
                    "success": False,
                    "eventsCreated": 0,
                    "errors": [
                        {"index": 0, "error": "VALIDATION_ERROR", "message": "bad url"},
                        {"index": 1, "error": "INTERNAL_ERROR", "message": "Failed to record event"},
                    ],
                },
            )
        ]
        tracker.track("pageview", url="https://example.com/0")
        tracker.track("pageview", url="https://example.com/1")

        assert tracker.flush() == FlushResult(requeued=1, dropped=1)
        tracker.flush()
        assert [e["url"] for e in transport.batches[1]] == ["https://example.com/1"]


class TestLifecycle:
    def test_close_sends_remaining(self, tracker: TrackerClient, transport: RecordingTransport) -> None:
        tracker.track("pageview", url="https://example.com/")
        result = tracker.close()

        assert result.sent == 1
        assert len(transport.batches) == 1

    def test_context_manager_flushes_on_exit(self, transport: RecordingTransport) -> None:
        config = TrackerConfig(tracking_code="pm-x", api_url=API_URL, flush_interval_seconds=60)
        with TrackerClient(
            config, http_client=httpx.Client(transport=httpx.MockTransport(transport))
        ) as client:
            client.track("pageview", url="https://example.com/")

        assert len(transport.batches) == 1

    def test_from_rules(self) -> None:
        rules = TrackerRules(batch_size=25, flush_interval_seconds=2.5)
        config = TrackerConfig.from_rules("pm-x", API_URL, rules)
        assert config.batch_size == 25
        assert config.flush_interval_seconds == 2.5
        assert config.batch_url == API_URL + "/batch"


class TestNavigation:
    def test_observer_records_pageviews(
        self, tracker: TrackerClient, transport: RecordingTransport
    ) -> None:
        history = NavigationHistory("https://example.com/")
        tracker.page_view("https://example.com/", referrer="https://news.ycombinator.com/")
        tracker.observe(history)

        history.push("https://example.com/docs")
        history.replace("https://example.com/docs#install")
        tracker.flush()

        urls = [e["url"] for e in transport.batches[0]]
        assert urls == [
            "https://example.com/",
            "https://example.com/docs",
            "https://example.com/docs#install",
        ]
        # In-app navigations keep the entry referrer
        assert transport.batches[0][1]["referrer"] == "https://news.ycombinator.com/"

    def test_close_unsubscribes(self, tracker: TrackerClient, transport: RecordingTransport) -> None:
        history = NavigationHistory()
        tracker.observe(history)
        tracker.close()

        history.push("https://example.com/later")
        assert tracker.pending == 0

    def test_listener_errors_are_contained(self) -> None:
        history = NavigationHistory()
        calls: list[str] = []

        def broken(url: str, previous: str | None) -> None:
            raise RuntimeError("boom")

        history.subscribe(broken)
        history.subscribe(lambda url, previous: calls.append(url))
        history.push("https://example.com/x")

        assert calls == ["https://example.com/x"]
        assert history.current == "https://example.com/x"
