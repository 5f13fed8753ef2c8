import logging
import os

from privacymetrics.rules.models import Rules

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Root logging setup for entry points; PM_LOG_LEVEL wins over the default."""
    level_name = (level or os.environ.get("PM_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)


def validate_ops_rules(rules: Rules) -> None:
    """
    Validate operational requirements before startup.

    Raises:
        RuntimeError: a required environment variable is missing.
    """
    missing = [env_var for env_var in rules.ops.required_env if env_var not in os.environ]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    if rules.ingest.salt_env_var not in os.environ:
        logger.warning(
            "%s is not set; visitor fingerprints use the development salt",
            rules.ingest.salt_env_var,
        )

    logger.info("Configuration validated")
