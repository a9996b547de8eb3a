import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, TypeVar

from focusapp.errors import StorageError
from focusapp.services.clock import Clock
from focusapp.services.session_store import SessionRecord, SessionStore

logger = logging.getLogger(__name__)

K = TypeVar("K")


@dataclass
class StatsResult(Generic[K]):
    range_start: datetime
    range_end: datetime
    buckets: dict[K, int] = field(default_factory=dict)
    error: str | None = None

    @property
    def total_seconds(self) -> int:
        return sum(self.buckets.values())


class StatsAggregator:
    """Sums finished work time into calendar buckets.

    Only ended, non-break sessions count. A session belongs entirely to the
    bucket its start_time falls in, even when it runs past midnight or the
    top of the hour. Buckets without sessions are left out; a missing key
    means zero.
    """

    def __init__(self, store: SessionStore, clock: Clock):
        self.store = store
        self.clock = clock

    async def _completed_work(self, start: datetime, end: datetime) -> list[SessionRecord]:
        sessions = await self.store.query_range(start, end)
        return [s for s in sessions if s.is_completed_work]

    async def weekly_stats(self, reference: datetime) -> dict[str, int]:
        """Seconds per local calendar day ("YYYY-MM-DD") for the week containing reference."""
        start, end = self.clock.week_range(reference)
        daily: dict[str, int] = {}
        for session in await self._completed_work(start, end):
            key = self.clock.day_key(session.start_time)
            daily[key] = daily.get(key, 0) + session.duration_seconds
        return daily

    async def hourly_stats(self, reference: datetime) -> dict[int, int]:
        """Seconds per local hour of day (0-23) for the day containing reference."""
        start, end = self.clock.day_range(reference)
        hourly: dict[int, int] = {}
        for session in await self._completed_work(start, end):
            hour = self.clock.hour_of(session.start_time)
            hourly[hour] = hourly.get(hour, 0) + session.duration_seconds
        return hourly


async def load_weekly_stats(aggregator: StatsAggregator, reference: datetime) -> StatsResult[str]:
    """weekly_stats for display code: a storage failure becomes an empty result with an error."""
    start, end = aggregator.clock.week_range(reference)
    try:
        buckets = await aggregator.weekly_stats(reference)
    except StorageError as exc:
        logger.warning("Weekly stats unavailable: %s", exc)
        return StatsResult(start, end, error=str(exc) or "Storage unavailable")
    return StatsResult(start, end, buckets)


async def load_hourly_stats(aggregator: StatsAggregator, reference: datetime) -> StatsResult[int]:
    """hourly_stats for display code: a storage failure becomes an empty result with an error."""
    start, end = aggregator.clock.day_range(reference)
    try:
        buckets = await aggregator.hourly_stats(reference)
    except StorageError as exc:
        logger.warning("Hourly stats unavailable: %s", exc)
        return StatsResult(start, end, error=str(exc) or "Storage unavailable")
    return StatsResult(start, end, buckets)
