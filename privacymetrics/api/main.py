import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from privacymetrics import __version__
from privacymetrics.adapters.sqlite import SQLiteMigrator
from privacymetrics.api.deps import get_settings
from privacymetrics.api.errors import install_error_handlers
from privacymetrics.api.routes import dashboard, events, track
from privacymetrics.config import configure_logging, validate_ops_rules
from privacymetrics.rules.loader import load_rules

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()
    configure_logging(settings.log_level)

    # Load rules and validate on startup (fail-fast)
    try:
        rules = load_rules(settings.rules_path)
        validate_ops_rules(rules)
        logger.info("Rules loaded from %s", settings.rules_path)
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        logger.critical("Rules load failed: %s", e)
        raise SystemExit(1) from e

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).run_migrations()

    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="PrivacyMetrics API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    install_error_handlers(app)

    app.include_router(events.router, prefix="/api/v1/events", tags=["Events"])
    app.include_router(track.router, prefix="/api/v1/track", tags=["Tracking"])
    app.include_router(dashboard.router, prefix="/api/v1/dashboard", tags=["Dashboard"])

    # Beacons come from arbitrary tracked origins without credentials.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "ok", "service": "api"}

    return app


app = create_app()
