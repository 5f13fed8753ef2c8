"""Python tracking client speaking the beacon wire format."""

from privacymetrics.client.navigation import NavigationHistory, NavigationObserver
from privacymetrics.client.tracker import FlushResult, TrackerClient, TrackerConfig

__all__ = [
    "FlushResult",
    "NavigationHistory",
    "NavigationObserver",
    "TrackerClient",
    "TrackerConfig",
]
