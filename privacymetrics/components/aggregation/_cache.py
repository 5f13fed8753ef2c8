"""
Read-through cache of daily pageview counts.

Rows in `daily_rollups` are only ever created here, by counting raw
events, and afterwards bumped by the recorder inside the recording
transaction. Both happen under a write transaction, so a cached day
cannot miss an event that committed before or after its backfill.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time, timedelta

from privacymetrics.core.entities import PAGEVIEW, DailyRollup

from .ports import TimePort, TrackingStorePort

logger = logging.getLogger(__name__)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


class DailyPageViewCache:
    def __init__(self, store: TrackingStorePort, time_port: TimePort) -> None:
        self._store = store
        self._time = time_port

    def get_counts(self, website_id: str, days: list[date]) -> dict[date, int]:
        """Pageviews per UTC day, backfilling missing rows from raw events."""
        if not days:
            return {}

        counts: dict[date, int] = {}
        misses = 0
        with self._store.unit_of_work() as uow:
            for day in days:
                cached = uow.rollups.get(website_id, day)
                if cached is not None:
                    counts[day] = cached.page_views
                    continue

                start, end = day_bounds(day)
                page_views = uow.events.count_in_window(website_id, start, end, PAGEVIEW)
                uow.rollups.put(
                    DailyRollup(
                        website_id=website_id,
                        day=day,
                        page_views=page_views,
                        updated_at=self._time.now_utc(),
                    )
                )
                counts[day] = page_views
                misses += 1
            uow.commit()

        if misses:
            logger.debug("Backfilled %d daily rollups for website %s", misses, website_id)
        return counts
