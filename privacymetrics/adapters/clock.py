from __future__ import annotations

from datetime import UTC, datetime, timedelta


class SystemClock:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """
    Clock that returns a fixed time until advanced.

    Used by tests that need deterministic timestamps and session timeouts.
    """

    def __init__(self, frozen_utc: datetime) -> None:
        if frozen_utc.tzinfo is None:
            frozen_utc = frozen_utc.replace(tzinfo=UTC)
        self._frozen = frozen_utc.astimezone(UTC)

    def now_utc(self) -> datetime:
        return self._frozen

    def advance(self, delta: timedelta) -> None:
        self._frozen = self._frozen + delta

    def set(self, new_time: datetime) -> None:
        if new_time.tzinfo is None:
            new_time = new_time.replace(tzinfo=UTC)
        self._frozen = new_time.astimezone(UTC)
