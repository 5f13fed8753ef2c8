"""
Tests for the event ingestion API.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from privacymetrics.api import deps

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.5 Mobile/15E148 Safari/604.1"
)


class TestCreateEvent:
    def test_created(self, client: TestClient, beacon) -> None:
        response = client.post("/api/v1/events", json=beacon(), headers={"User-Agent": IPHONE_UA})

        assert response.status_code == 201
        body = response.json()
        assert body["websiteId"] == "site-1"
        assert body["eventType"] == "pageview"
        assert body["pageUrl"] == "https://example.com/"
        assert body["sessionId"] == "sess-1"
        assert body["visitorId"]

    def test_validation_error_lists_fields(self, client: TestClient, beacon) -> None:
        response = client.post("/api/v1/events", json=beacon(url="nope", eventType="bogus"))

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert {d["field"] for d in body["details"]} == {"url", "eventType"}

    def test_unknown_tracking_code(self, client: TestClient, beacon) -> None:
        response = client.post("/api/v1/events", json=beacon(trackingCode="pm-unknown"))

        assert response.status_code == 404
        assert response.json() == {"error": "NOT_FOUND", "message": "Website not found"}

    def test_non_object_body(self, client: TestClient) -> None:
        response = client.post("/api/v1/events", json=[1, 2, 3])

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_huge_page_leave_duration_is_rejected(self, client: TestClient, beacon) -> None:
        response = client.post(
            "/api/v1/events",
            json=beacon(eventType="page_leave", properties={"duration": 1e30}),
        )

        assert response.status_code == 400
        assert [d["field"] for d in response.json()["details"]] == ["properties"]

    @pytest.mark.parametrize(
        "timestamp", ["0001-01-01T00:00:00+01:00", "9999-12-31T23:59:59-01:00"]
    )
    def test_out_of_range_timestamp_is_rejected(
        self, client: TestClient, beacon, timestamp: str
    ) -> None:
        response = client.post("/api/v1/events", json=beacon(timestamp=timestamp))

        assert response.status_code == 400
        assert response.json()["details"][0]["code"] == "invalid_timestamp"

    def test_internal_error_is_opaque(self, app, client: TestClient, beacon) -> None:
        class BrokenStore:
            def unit_of_work(self, read_only: bool = False):
                raise RuntimeError("database exploded at /secret/path")

        app.dependency_overrides[deps.get_store] = lambda: BrokenStore()
        response = client.post("/api/v1/events", json=beacon())

        assert response.status_code == 500
        assert response.json()["error"] == "INTERNAL_ERROR"
        assert "secret" not in response.text


class TestBatch:
    def test_partial_success(self, client: TestClient, beacon) -> None:
        events = [beacon(sessionId=f"s{i}") for i in range(10)]
        events += [beacon(url="bad url"), beacon(url="ftp://example.com/")]

        response = client.post("/api/v1/events/batch", json={"events": events})

        assert response.status_code == 207
        body = response.json()
        assert body["success"] is False
        assert body["eventsCreated"] == 10
        assert len(body["errors"]) == 2
        assert [e["index"] for e in body["errors"]] == [10, 11]
        assert body["errors"][0]["error"] == "VALIDATION_ERROR"

    def test_huge_page_leave_is_not_retryable(self, client: TestClient, beacon) -> None:
        events = [beacon(), beacon(eventType="page_leave", properties={"duration": 1e30})]
        response = client.post("/api/v1/events/batch", json={"events": events})

        assert response.status_code == 207
        assert [(e["index"], e["error"]) for e in response.json()["errors"]] == [
            (1, "VALIDATION_ERROR")
        ]

    def test_all_created(self, client: TestClient, beacon) -> None:
        response = client.post("/api/v1/events/batch", json={"events": [beacon(), beacon()]})

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["errors"] is None
        assert body["message"] == "Successfully created 2 events"

    def test_all_invalid(self, client: TestClient, beacon) -> None:
        response = client.post("/api/v1/events/batch", json={"events": [beacon(url="x"), "junk"]})

        assert response.status_code == 400
        assert response.json()["eventsCreated"] == 0

    def test_empty_batch_rejected(self, client: TestClient) -> None:
        response = client.post("/api/v1/events/batch", json={"events": []})
        assert response.status_code == 400

    def test_oversized_batch_rejected(self, client: TestClient, beacon, rules) -> None:
        events = [beacon() for _ in range(rules.ingest.max_batch_size + 1)]
        response = client.post("/api/v1/events/batch", json={"events": events})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestListEvents:
    def test_pagination(self, client: TestClient, beacon, clock) -> None:
        for i in range(3):
            client.post("/api/v1/events", json=beacon(url=f"https://example.com/{i}"))
            clock.advance(timedelta(seconds=1))

        response = client.get(
            "/api/v1/events", params={"trackingCode": "pm-testsite", "limit": 2}
        )

        assert response.status_code == 200
        body = response.json()
        assert [e["pageUrl"] for e in body["events"]] == [
            "https://example.com/2",
            "https://example.com/1",
        ]
        assert body["pagination"] == {"total": 3, "limit": 2, "offset": 0, "hasMore": True}

    def test_unknown_code(self, client: TestClient) -> None:
        response = client.get("/api/v1/events", params={"trackingCode": "pm-none"})
        assert response.status_code == 404

    def test_missing_code(self, client: TestClient) -> None:
        response = client.get("/api/v1/events")
        assert response.status_code == 400


class TestClientAddress:
    def count_visitors(self, store) -> int:
        with store.unit_of_work(read_only=True) as uow:
            return len(uow.visitors.list_by_website("site-1"))

    def send_from(self, client: TestClient, beacon, forwarded_for: str) -> None:
        client.post("/api/v1/events", json=beacon(), headers={"X-Forwarded-For": forwarded_for})

    def test_forwarded_header_ignored_by_default(
        self, app, client: TestClient, beacon, store, monkeypatch
    ) -> None:
        monkeypatch.delenv("PM_TRUST_PROXY", raising=False)
        app.dependency_overrides[deps.get_settings] = deps.Settings

        self.send_from(client, beacon, "203.0.113.1")
        self.send_from(client, beacon, "203.0.113.2")

        assert self.count_visitors(store) == 1

    def test_forwarded_header_used_behind_trusted_proxy(
        self, app, client: TestClient, beacon, store, monkeypatch
    ) -> None:
        monkeypatch.setenv("PM_TRUST_PROXY", "true")
        app.dependency_overrides[deps.get_settings] = deps.Settings

        self.send_from(client, beacon, "203.0.113.1")
        self.send_from(client, beacon, "203.0.113.2, 10.0.0.1")

        assert self.count_visitors(store) == 2
