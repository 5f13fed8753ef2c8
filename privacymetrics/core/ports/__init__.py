"""Protocol ports implemented by adapters."""

from privacymetrics.core.ports.store import (
    EventRepoPort,
    RollupRepoPort,
    SessionRepoPort,
    TrackingStorePort,
    UnitOfWorkPort,
    VisitorRepoPort,
    WebsiteRepoPort,
)
from privacymetrics.core.ports.time import TimePort

__all__ = [
    "EventRepoPort",
    "RollupRepoPort",
    "SessionRepoPort",
    "TimePort",
    "TrackingStorePort",
    "UnitOfWorkPort",
    "VisitorRepoPort",
    "WebsiteRepoPort",
]
