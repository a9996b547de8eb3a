"""Time source and calendar bucket boundaries.

All instants handed out are timezone-aware. Calendar questions (which day,
which hour, where a week starts) are answered in the configured local zone,
so statistics line up with what the user sees on the wall clock.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime: ...

    def start_of_day(self, instant: datetime) -> datetime: ...

    def start_of_week(self, instant: datetime) -> datetime: ...

    def day_range(self, instant: datetime) -> tuple[datetime, datetime]: ...

    def week_range(self, instant: datetime) -> tuple[datetime, datetime]: ...

    def day_key(self, instant: datetime) -> str: ...

    def hour_of(self, instant: datetime) -> int: ...


class CalendarClock(ABC):
    """Local-calendar arithmetic shared by the real and the fixed clock."""

    def __init__(self, tz: tzinfo | str = "UTC", first_weekday: int = 0):
        if isinstance(tz, str):
            tz = ZoneInfo(tz)
        if not 0 <= first_weekday <= 6:
            raise ValueError("first_weekday must be between 0 (Monday) and 6 (Sunday)")
        self.tz = tz
        self.first_weekday = first_weekday

    @abstractmethod
    def now(self) -> datetime: ...

    def local(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz)

    def _midnight(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tz)

    def start_of_day(self, instant: datetime) -> datetime:
        return self._midnight(self.local(instant).date())

    def start_of_week(self, instant: datetime) -> datetime:
        day = self.local(instant).date()
        offset = (day.weekday() - self.first_weekday) % 7
        return self._midnight(day - timedelta(days=offset))

    def day_range(self, instant: datetime) -> tuple[datetime, datetime]:
        start = self.start_of_day(instant)
        # next local midnight, not start + 24h, so DST days stay whole
        return start, self._midnight(start.date() + timedelta(days=1))

    def week_range(self, instant: datetime) -> tuple[datetime, datetime]:
        start = self.start_of_week(instant)
        return start, self._midnight(start.date() + timedelta(days=7))

    def day_key(self, instant: datetime) -> str:
        return self.local(instant).date().isoformat()

    def hour_of(self, instant: datetime) -> int:
        return self.local(instant).hour


class SystemClock(CalendarClock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(CalendarClock):
    """Clock that only moves when told to. Used by tests and replays."""

    def __init__(
        self,
        current: datetime,
        tz: tzinfo | str = "UTC",
        first_weekday: int = 0,
    ):
        super().__init__(tz, first_weekday)
        self.set(current)

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        # naive means UTC, same as local(); kept in UTC so advance() is exact across DST
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current.astimezone(timezone.utc)

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta given as keyword args (seconds=10, ...)."""
        self._current = self._current + timedelta(**kwargs)
        return self._current
