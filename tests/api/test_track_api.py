"""
Tests for the public beacon endpoint.
"""

from __future__ import annotations

import json

from fastapi.testclient import TestClient


def count_events(store) -> int:
    with store.unit_of_work(read_only=True) as uow:
        _, total = uow.events.list_recent("site-1")
    return total


def test_single_beacon(client: TestClient, store, beacon) -> None:
    response = client.post("/api/v1/track", json=beacon())

    assert response.status_code == 204
    assert response.content == b""
    assert count_events(store) == 1


def test_text_plain_beacon(client: TestClient, store, beacon) -> None:
    # navigator.sendBeacon sends a string body
    response = client.post(
        "/api/v1/track",
        content=json.dumps({"events": [beacon(), beacon(eventType="click")]}),
        headers={"Content-Type": "text/plain;charset=UTF-8"},
    )

    assert response.status_code == 204
    assert count_events(store) == 2


def test_unknown_tracking_code_is_silent(client: TestClient, store, beacon) -> None:
    response = client.post("/api/v1/track", json=beacon(trackingCode="pm-nobody"))

    assert response.status_code == 204
    assert count_events(store) == 0


def test_invalid_beacon_is_silent(client: TestClient, store, beacon) -> None:
    response = client.post("/api/v1/track", json=beacon(url="garbage"))

    assert response.status_code == 204
    assert count_events(store) == 0


def test_malformed_body_is_silent(client: TestClient) -> None:
    response = client.post("/api/v1/track", content=b"{not json")
    assert response.status_code == 204


def test_batch_is_truncated(client: TestClient, store, beacon, rules) -> None:
    events = [beacon() for _ in range(rules.ingest.max_batch_size + 5)]
    client.post("/api/v1/track", json={"events": events})

    assert count_events(store) == rules.ingest.max_batch_size


def test_health(client: TestClient) -> None:
    response = client.get("/api/v1/track/health")
    assert response.json() == {"status": "ok", "service": "tracking"}
