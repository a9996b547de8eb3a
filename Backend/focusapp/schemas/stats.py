from datetime import date

from pydantic import BaseModel


class WeeklyStatsResponse(BaseModel):
    week_start: date
    daily_durations: dict[str, int]  # "YYYY-MM-DD" -> seconds, missing day = 0
    total_seconds: int
    error: str | None = None


class HourlyStatsResponse(BaseModel):
    day: date
    hourly_durations: dict[int, int]  # hour 0-23 -> seconds, missing hour = 0
    total_seconds: int
    error: str | None = None
