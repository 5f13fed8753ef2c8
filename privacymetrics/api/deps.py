import logging
import os
from functools import lru_cache
from pathlib import Path

from fastapi import Depends, Request

from privacymetrics.adapters.clock import SystemClock
from privacymetrics.adapters.sqlite import SQLiteTrackingStore
from privacymetrics.components.aggregation import AggregationConfig, AggregationService
from privacymetrics.components.identity import IdentityConfig, IdentityResolver
from privacymetrics.components.recorder import EventRecorder, RecorderConfig
from privacymetrics.core.ports import TimePort, TrackingStorePort
from privacymetrics.rules.loader import load_rules
from privacymetrics.rules.models import Rules

logger = logging.getLogger(__name__)

DEV_IP_SALT = "privacymetrics-dev-salt"


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("PM_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "privacymetrics.db")
        self.rules_path = Path(os.environ.get("PM_RULES_PATH", self.base_dir / "rules.yaml"))
        self.migrations_dir = Path(
            os.environ.get("PM_MIGRATIONS_DIR", self.base_dir / "migrations")
        )
        self.log_level = os.environ.get("PM_LOG_LEVEL", "INFO").upper()
        # Only honour X-Forwarded-For when a reverse proxy sets it
        self.trust_proxy_headers = os.environ.get("PM_TRUST_PROXY", "").lower() in (
            "1",
            "true",
            "yes",
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return load_rules(settings.rules_path)


@lru_cache
def _salt_from_env(env_var: str) -> str:
    salt = os.environ.get(env_var)
    if not salt:
        logger.warning("%s is not set; using the development salt", env_var)
        return DEV_IP_SALT
    return salt


def get_ip_salt(rules: Rules = Depends(get_rules)) -> str:
    return _salt_from_env(rules.ingest.salt_env_var)


# --- Store and clock ---
@lru_cache
def _store_for(db_path: str) -> SQLiteTrackingStore:
    return SQLiteTrackingStore(db_path)


def get_store(settings: Settings = Depends(get_settings)) -> TrackingStorePort:
    return _store_for(settings.db_path)


def get_clock() -> TimePort:
    return SystemClock()


# --- Services ---
def get_recorder(
    store: TrackingStorePort = Depends(get_store),
    clock: TimePort = Depends(get_clock),
    rules: Rules = Depends(get_rules),
    salt: str = Depends(get_ip_salt),
) -> EventRecorder:
    identity = IdentityResolver(
        IdentityConfig(salt=salt, session_timeout_minutes=rules.ingest.session_timeout_minutes)
    )
    return EventRecorder(
        store=store,
        identity=identity,
        time_port=clock,
        config=RecorderConfig.from_rules(rules.ingest, rules.aggregation.rollup_cache_enabled),
    )


def get_aggregation_service(
    store: TrackingStorePort = Depends(get_store),
    clock: TimePort = Depends(get_clock),
    rules: Rules = Depends(get_rules),
) -> AggregationService:
    return AggregationService(store, clock, AggregationConfig.from_rules(rules.aggregation))


# --- Request helpers ---
def get_client_ip(request: Request, settings: Settings = Depends(get_settings)) -> str | None:
    """Client address; X-Forwarded-For wins only when PM_TRUST_PROXY is set."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and settings.trust_proxy_headers:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")
