import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from privacymetrics.api import deps
from privacymetrics.api.errors import install_error_handlers
from privacymetrics.api.routes import dashboard, events, track


@pytest.fixture
def app(store, clock, rules, website) -> FastAPI:
    """Routers mounted as in production with store, clock and rules overridden."""
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(events.router, prefix="/api/v1/events")
    app.include_router(track.router, prefix="/api/v1/track")
    app.include_router(dashboard.router, prefix="/api/v1/dashboard")

    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_rules] = lambda: rules
    app.dependency_overrides[deps.get_ip_salt] = lambda: "api-test-salt"
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


def make_beacon(**overrides):
    data = {
        "trackingCode": "pm-testsite",
        "eventType": "pageview",
        "url": "https://example.com/",
        "referrer": None,
        "sessionId": "sess-1",
        "visitorId": "vis-1",
        "properties": None,
    }
    data.update(overrides)
    return data


@pytest.fixture
def beacon():
    return make_beacon
