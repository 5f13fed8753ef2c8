from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    """Source of the current time. All timestamps are timezone-aware UTC."""

    def now_utc(self) -> datetime:
        ...
