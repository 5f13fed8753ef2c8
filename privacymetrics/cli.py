import argparse
import logging
import secrets
import sys
from pathlib import Path
from uuid import uuid4

from privacymetrics.adapters.clock import SystemClock
from privacymetrics.adapters.sqlite import SQLiteMigrator, SQLiteTrackingStore
from privacymetrics.api.deps import Settings
from privacymetrics.components.recorder._impl import TRACKING_CODE_PREFIX
from privacymetrics.config import configure_logging
from privacymetrics.core.entities import Website

logger = logging.getLogger("privacymetrics.cli")


def new_tracking_code() -> str:
    return f"{TRACKING_CODE_PREFIX}{secrets.token_urlsafe(12)}"


def handle_migrate(settings: Settings) -> None:
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)
    migrator = SQLiteMigrator(settings.db_path, str(settings.migrations_dir))
    applied = migrator.run_migrations()
    if applied:
        print(f"Applied {len(applied)} migration(s): {', '.join(applied)}")
    else:
        print("Database is up to date.")


def handle_register_website(settings: Settings, args: argparse.Namespace) -> None:
    store = SQLiteTrackingStore(settings.db_path)
    website = Website(
        id=str(uuid4()),
        user_id=args.user_id,
        domain=args.domain,
        tracking_code=new_tracking_code(),
        is_active=True,
        created_at=SystemClock().now_utc(),
    )
    with store.unit_of_work() as uow:
        uow.websites.save(website)
        uow.commit()

    logger.info("Registered website %s for %s", website.id, website.domain)
    print(f"Website id:    {website.id}")
    print(f"Tracking code: {website.tracking_code}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="PrivacyMetrics CLI")
    parser.add_argument("--log-level", default=None, help="Override PM_LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply pending database migrations")

    # register-website
    register_parser = subparsers.add_parser(
        "register-website", help="Create a website and print its tracking code"
    )
    register_parser.add_argument("--domain", required=True, help="Site domain, e.g. example.com")
    register_parser.add_argument("--user-id", default=None, help="Owning account id")

    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    settings = Settings()

    if args.command == "migrate":
        handle_migrate(settings)
    elif args.command == "register-website":
        if not Path(settings.db_path).exists():
            logger.error("Database %s not found. Run 'migrate' first.", settings.db_path)
            sys.exit(1)
        handle_register_website(settings, args)


if __name__ == "__main__":
    main()
