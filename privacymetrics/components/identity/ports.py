"""
Identity component port definitions.
"""

from __future__ import annotations

from privacymetrics.core.ports import TimePort, TrackingStorePort, UnitOfWorkPort

__all__ = ["TimePort", "TrackingStorePort", "UnitOfWorkPort"]
