from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

import pytest

from privacymetrics.components.aggregation import AggregationService, SeriesBucket, TimeWindow
from privacymetrics.components.recorder import create_event_recorder
from privacymetrics.core.entities import DailyRollup, DeviceType, Event


def beacon(**overrides):
    data = {
        "trackingCode": "pm-testsite",
        "eventType": "pageview",
        "url": "https://example.com/",
        "referrer": None,
        "sessionId": "sess-1",
        "visitorId": "vis-1",
    }
    data.update(overrides)
    return data


@pytest.fixture
def recorder(store, clock):
    return create_event_recorder(store, clock, salt="integration-salt")


# --- Repositories ---


def test_website_lookup(store, website):
    with store.unit_of_work(read_only=True) as uow:
        assert uow.websites.get_by_tracking_code("pm-testsite") == website
        assert uow.websites.get_by_id("site-1") == website
        assert uow.websites.get_by_tracking_code("pm-other") is None


def test_inactive_website_hidden_by_tracking_code(store, website):
    with store.unit_of_work() as uow:
        uow.websites.save(website.model_copy(update={"is_active": False}))
        uow.commit()

    with store.unit_of_work(read_only=True) as uow:
        assert uow.websites.get_by_tracking_code("pm-testsite") is None
        assert uow.websites.get_by_id("site-1") is not None


def test_uncommitted_work_is_rolled_back(store, website, clock):
    with store.unit_of_work() as uow:
        uow.visitors.upsert("site-1", "fp", clock.now_utc(), 1)

    with store.unit_of_work(read_only=True) as uow:
        assert uow.visitors.list_by_website("site-1") == []


def test_visitor_upsert_merges(store, website, clock):
    now = clock.now_utc()
    with store.unit_of_work() as uow:
        first = uow.visitors.upsert("site-1", "fp", now, 1, country="Germany")
        second = uow.visitors.upsert("site-1", "fp", now - timedelta(hours=1), 1, country="France")
        uow.commit()

    assert first.id == second.id
    assert second.page_views == 2
    assert second.first_seen == now - timedelta(hours=1)
    assert second.last_seen == now
    assert second.country == "Germany"


def test_session_upsert_keeps_device(store, website, clock):
    now = clock.now_utc()
    with store.unit_of_work() as uow:
        visitor = uow.visitors.upsert("site-1", "fp", now, 1)
        uow.sessions.upsert("s1", "site-1", visitor.id, "s1", 0, now, 1, 0, DeviceType.MOBILE)
        session = uow.sessions.upsert(
            "s1", "site-1", visitor.id, "s1", 0, now + timedelta(seconds=30), 0, 12, DeviceType.DESKTOP
        )
        uow.commit()

    assert session.device_type == DeviceType.MOBILE
    assert session.page_count == 1
    assert session.duration_seconds == 12
    assert session.last_activity_at == now + timedelta(seconds=30)


def test_event_round_trip(store, website, clock):
    event = Event(
        id="e1",
        website_id="site-1",
        session_id="s1",
        visitor_id=None,
        event_type="custom",
        page_url="https://example.com/",
        device_type=DeviceType.TABLET,
        properties={"plan": "pro", "seats": 3},
        timestamp=clock.now_utc(),
        received_at=clock.now_utc(),
    )
    with store.unit_of_work() as uow:
        uow.events.append(event)
        uow.commit()

    with store.unit_of_work(read_only=True) as uow:
        events, total = uow.events.list_recent("site-1")

    assert total == 1
    assert events[0] == event


def test_window_is_half_open(store, website, clock):
    now = clock.now_utc()
    with store.unit_of_work() as uow:
        for i, ts in enumerate([now - timedelta(hours=1), now]):
            uow.events.append(
                Event(
                    id=f"e{i}",
                    website_id="site-1",
                    session_id="s",
                    event_type="pageview",
                    page_url="https://example.com/",
                    timestamp=ts,
                )
            )
        uow.commit()

    with store.unit_of_work(read_only=True) as uow:
        assert uow.events.count_in_window("site-1", now - timedelta(hours=1), now) == 1
        assert uow.events.count_in_window("site-1", now - timedelta(hours=1), now, "click") == 0


def test_rollup_increment_only_when_present(store, website, clock):
    day = date(2026, 3, 10)
    with store.unit_of_work() as uow:
        assert uow.rollups.increment_if_present("site-1", day, 1, clock.now_utc()) is False
        uow.rollups.put(DailyRollup(website_id="site-1", day=day, page_views=3, updated_at=clock.now_utc()))
        assert uow.rollups.increment_if_present("site-1", day, 2, clock.now_utc()) is True
        uow.commit()

    with store.unit_of_work(read_only=True) as uow:
        rollup = uow.rollups.get("site-1", day)
    assert rollup is not None
    assert rollup.page_views == 5


# --- Recording through SQLite ---


def test_concurrent_beacons_create_one_visitor(store, website, clock):
    n = 20

    def send(i):
        recorder = create_event_recorder(store, clock, salt="integration-salt")
        return recorder.record(beacon(sessionId=f"sess-{i}"), client_ip="198.51.100.7")

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(send, range(n)))

    assert all(r.success for r in results)
    with store.unit_of_work(read_only=True) as uow:
        visitors = uow.visitors.list_by_website("site-1")
        _, total = uow.events.list_recent("site-1")

    assert len(visitors) == 1
    assert visitors[0].page_views == n
    assert total == n


def test_concurrent_beacons_share_one_session(store, website, clock):
    def send(_):
        recorder = create_event_recorder(store, clock, salt="integration-salt")
        return recorder.record(beacon(), client_ip="198.51.100.7")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(send, range(10)))

    with store.unit_of_work(read_only=True) as uow:
        session = uow.sessions.get("site-1", "sess-1")
        assert uow.sessions.get("site-1", "sess-1#1") is None

    assert session is not None
    assert session.page_count == 10


def test_session_segments_after_timeout(store, website, clock, recorder):
    recorder.record(beacon())
    clock.advance(timedelta(minutes=45))
    out = recorder.record(beacon())

    assert out.event is not None
    assert out.event.session_id == "sess-1#1"


def test_same_session_token_on_two_websites(store, website, clock, recorder):
    other = website.model_copy(update={"id": "site-2", "tracking_code": "pm-second", "domain": "b.org"})
    with store.unit_of_work() as uow:
        uow.websites.save(other)
        uow.commit()

    recorder.record(beacon())
    recorder.record(beacon(trackingCode="pm-second"))

    with store.unit_of_work(read_only=True) as uow:
        a = uow.sessions.get("site-1", "sess-1")
        b = uow.sessions.get("site-2", "sess-1")

    assert a is not None and b is not None
    assert a.visitor_id != b.visitor_id


def test_raw_ip_is_not_persisted(store, website, recorder, tmp_path):
    recorder.record(beacon(), client_ip="203.0.113.200")

    # Main file plus WAL and shared-memory files
    for path in tmp_path.glob("privacymetrics.db*"):
        assert b"203.0.113.200" not in path.read_bytes()


# --- Rollup cache consistency ---


def test_series_matches_raw_events_after_more_writes(store, website, clock, recorder):
    clock.set(clock.now_utc() - timedelta(days=1))
    recorder.record(beacon())
    recorder.record(beacon(eventType="click"))
    clock.advance(timedelta(days=1))

    service = AggregationService(store, clock)
    window = service.window_for_days(3)

    first = service.get_page_view_series("site-1", window)
    assert sum(p.page_views for p in first) == 1

    # A late event for a day that is now cached bumps the cached row
    recorder.record(beacon(timestamp=(clock.now_utc() - timedelta(hours=20)).isoformat()))
    second = service.get_page_view_series("site-1", window)

    hourly = service.get_page_view_series("site-1", window, SeriesBucket.HOUR)
    assert sum(p.page_views for p in second) == sum(p.page_views for p in hourly) == 2


def test_dashboard_over_sqlite(store, website, clock, recorder):
    recorder.record(beacon(sessionId="a"))
    recorder.record(beacon(sessionId="b", url="https://example.com/x"))
    recorder.record(beacon(sessionId="b", url="https://example.com/y"))
    recorder.record(beacon(sessionId="b", url="https://example.com/z"))
    clock.advance(timedelta(minutes=1))

    service = AggregationService(store, clock)
    metrics, window = service.get_dashboard_metrics("site-1", 7)

    assert metrics.page_views == 4
    assert metrics.sessions == 2
    assert metrics.bounce_rate == 50
    assert metrics.page_views_change == 100
    assert service.count_page_views("site-1", window) == 4
    assert service.calculate_bounce_rate("site-1", window) == 50
    assert service.count_sessions("site-1", window) == 2
    assert service.count_unique_visitors("site-1", window) == 1


def test_explicit_window_excludes_later_events(store, website, clock, recorder):
    start = clock.now_utc()
    recorder.record(beacon())
    clock.advance(timedelta(seconds=130))
    recorder.record(beacon(url="https://example.com/next"))
    clock.advance(timedelta(seconds=1))

    service = AggregationService(store, clock)
    both = TimeWindow(start, clock.now_utc())
    first_only = TimeWindow(start, start + timedelta(seconds=1))

    assert service.calculate_avg_session_duration("site-1", both) == 130
    assert service.calculate_avg_session_duration("site-1", first_only) == 0
