from datetime import datetime

from fastapi import APIRouter, Depends, Query

from focusapp.dependencies import get_clock, get_stats_aggregator
from focusapp.schemas.stats import HourlyStatsResponse, WeeklyStatsResponse
from focusapp.services.clock import Clock
from focusapp.services.stats_service import StatsAggregator, load_hourly_stats, load_weekly_stats

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/weekly", response_model=WeeklyStatsResponse)
async def weekly_stats(
    reference: datetime | None = Query(default=None),
    aggregator: StatsAggregator = Depends(get_stats_aggregator),
    clock: Clock = Depends(get_clock),
):
    """Work seconds per day of the week containing reference (default: now)."""
    result = await load_weekly_stats(aggregator, reference or clock.now())
    return WeeklyStatsResponse(
        week_start=result.range_start.date(),
        daily_durations=result.buckets,
        total_seconds=result.total_seconds,
        error=result.error,
    )


@router.get("/hourly", response_model=HourlyStatsResponse)
async def hourly_stats(
    reference: datetime | None = Query(default=None),
    aggregator: StatsAggregator = Depends(get_stats_aggregator),
    clock: Clock = Depends(get_clock),
):
    """Work seconds per hour of the day containing reference (default: now)."""
    result = await load_hourly_stats(aggregator, reference or clock.now())
    return HourlyStatsResponse(
        day=result.range_start.date(),
        hourly_durations=result.buckets,
        total_seconds=result.total_seconds,
        error=result.error,
    )
