"""
Recorder component port definitions.
"""

from __future__ import annotations

from privacymetrics.core.ports import TimePort, TrackingStorePort

__all__ = ["TimePort", "TrackingStorePort"]
