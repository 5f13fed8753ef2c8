from datetime import UTC, datetime
from pathlib import Path

import pytest

from privacymetrics.adapters.clock import FrozenClock
from privacymetrics.adapters.sqlite import SQLiteMigrator, SQLiteTrackingStore
from privacymetrics.core.entities import Website
from privacymetrics.rules.loader import load_rules
from privacymetrics.rules.models import Rules

PROJECT_ROOT = Path(__file__).resolve().parents[1]
MIGRATIONS_DIR = PROJECT_ROOT / "migrations"
RULES_PATH = PROJECT_ROOT / "rules.yaml"

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "privacymetrics.db")


@pytest.fixture
def store(db_path) -> SQLiteTrackingStore:
    """Migrated SQLite store in a temporary directory."""
    SQLiteMigrator(db_path, str(MIGRATIONS_DIR)).run_migrations()
    return SQLiteTrackingStore(db_path)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def rules() -> Rules:
    # Real rules from the project root
    return load_rules(RULES_PATH)


@pytest.fixture
def website(store: SQLiteTrackingStore) -> Website:
    site = Website(
        id="site-1",
        user_id="owner-1",
        domain="example.com",
        tracking_code="pm-testsite",
        created_at=NOW,
    )
    with store.unit_of_work() as uow:
        uow.websites.save(site)
        uow.commit()
    return site


@pytest.fixture
def migrations_dir() -> str:
    return str(MIGRATIONS_DIR)
