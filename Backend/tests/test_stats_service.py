from datetime import datetime, timedelta, timezone

import pytest

from focusapp.errors import StorageError
from focusapp.services.clock import FixedClock
from focusapp.services.stats_service import StatsAggregator, load_hourly_stats, load_weekly_stats


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def aggregator(memory_store, clock) -> StatsAggregator:
    return StatsAggregator(memory_store, clock)


@pytest.mark.asyncio
async def test_weekly_sums_work_per_day_and_skips_breaks(aggregator, memory_store, clock):
    memory_store.add(utc(2026, 10, 13, 9, 0), 300)
    memory_store.add(utc(2026, 10, 13, 15, 0), 600)
    memory_store.add(utc(2026, 10, 13, 16, 0), 120, is_break=True)

    stats = await aggregator.weekly_stats(clock.now())

    assert stats == {"2026-10-13": 900}


@pytest.mark.asyncio
async def test_weekly_leaves_out_empty_days(aggregator, memory_store, clock):
    memory_store.add(utc(2026, 10, 12, 8, 0), 60)
    memory_store.add(utc(2026, 10, 18, 23, 0), 45)

    stats = await aggregator.weekly_stats(clock.now())

    assert sorted(stats) == ["2026-10-12", "2026-10-18"]
    assert stats.get("2026-10-14", 0) == 0


@pytest.mark.asyncio
async def test_weekly_ignores_open_sessions(aggregator, memory_store, clock):
    memory_store.add(utc(2026, 10, 14, 8, 0), 1200)
    memory_store.add(utc(2026, 10, 14, 9, 30))

    assert await aggregator.weekly_stats(clock.now()) == {"2026-10-14": 1200}


@pytest.mark.asyncio
async def test_weekly_range_is_half_open(aggregator, memory_store, clock):
    memory_store.add(utc(2026, 10, 12, 0, 0), 10)  # first instant of the week
    memory_store.add(utc(2026, 10, 11, 23, 59, 59), 20)  # previous week
    memory_store.add(utc(2026, 10, 19, 0, 0), 30)  # next week

    assert await aggregator.weekly_stats(clock.now()) == {"2026-10-12": 10}


@pytest.mark.asyncio
async def test_weekly_honours_first_day_of_week(memory_store):
    clock = FixedClock(utc(2026, 10, 14, 10, 0), first_weekday=6)
    memory_store.add(utc(2026, 10, 11, 12, 0), 100)  # Sunday
    memory_store.add(utc(2026, 10, 18, 12, 0), 200)  # next Sunday

    stats = await StatsAggregator(memory_store, clock).weekly_stats(clock.now())

    assert stats == {"2026-10-11": 100}


@pytest.mark.asyncio
async def test_weekly_total_matches_qualifying_sessions(aggregator, memory_store, clock):
    qualifying = [
        memory_store.add(utc(2026, 10, 12, 7, 0), 1500),
        memory_store.add(utc(2026, 10, 14, 9, 0), 2700),
        memory_store.add(utc(2026, 10, 14, 11, 0), 30),
        memory_store.add(utc(2026, 10, 17, 20, 0), 4000),
    ]
    memory_store.add(utc(2026, 10, 15, 9, 0), 600, is_break=True)
    memory_store.add(utc(2026, 10, 16, 9, 0))
    memory_store.add(utc(2026, 10, 20, 9, 0), 999)

    stats = await aggregator.weekly_stats(clock.now())

    assert sum(stats.values()) == sum(s.duration_seconds for s in qualifying)


@pytest.mark.asyncio
async def test_session_crossing_midnight_counts_on_start_day(aggregator, memory_store, clock):
    memory_store.add(utc(2026, 10, 13, 23, 58), 420)

    assert await aggregator.weekly_stats(clock.now()) == {"2026-10-13": 420}


@pytest.mark.asyncio
async def test_hourly_groups_by_start_hour(aggregator, memory_store, clock):
    memory_store.add(utc(2026, 10, 14, 14, 5), 600)
    memory_store.add(utc(2026, 10, 14, 14, 50), 300)

    assert await aggregator.hourly_stats(clock.now()) == {14: 900}


@pytest.mark.asyncio
async def test_hourly_only_covers_reference_day(aggregator, memory_store, clock):
    memory_store.add(utc(2026, 10, 14, 0, 0), 60)
    memory_store.add(utc(2026, 10, 14, 23, 59), 120)
    memory_store.add(utc(2026, 10, 13, 23, 30), 500)
    memory_store.add(utc(2026, 10, 15, 0, 0), 700)
    memory_store.add(utc(2026, 10, 14, 9, 0), 800, is_break=True)

    stats = await aggregator.hourly_stats(clock.now())

    assert stats == {0: 60, 23: 120}


@pytest.mark.asyncio
async def test_hourly_uses_local_time(memory_store):
    clock = FixedClock(utc(2026, 10, 14, 18, 0), tz="America/New_York")
    # 18:10 UTC is 14:10 in New York
    memory_store.add(utc(2026, 10, 14, 18, 10), 240)
    # 03:00 UTC on the 14th is still the 13th in New York
    memory_store.add(utc(2026, 10, 14, 3, 0), 999)

    stats = await StatsAggregator(memory_store, clock).hourly_stats(clock.now())

    assert stats == {14: 240}


@pytest.mark.asyncio
async def test_aggregator_propagates_storage_errors(aggregator, memory_store, clock):
    memory_store.failing.add("query_range")

    with pytest.raises(StorageError):
        await aggregator.weekly_stats(clock.now())
    with pytest.raises(StorageError):
        await aggregator.hourly_stats(clock.now())


@pytest.mark.asyncio
async def test_load_stats_turns_failures_into_empty_results(aggregator, memory_store, clock):
    memory_store.add(utc(2026, 10, 14, 9, 0), 100)
    memory_store.failing.add("query_range")

    weekly = await load_weekly_stats(aggregator, clock.now())
    hourly = await load_hourly_stats(aggregator, clock.now())

    assert weekly.buckets == {} and weekly.error
    assert hourly.buckets == {} and hourly.error
    assert weekly.total_seconds == 0


@pytest.mark.asyncio
async def test_load_weekly_stats_reports_range(aggregator, memory_store, clock):
    memory_store.add(utc(2026, 10, 14, 9, 0), 100)

    result = await load_weekly_stats(aggregator, clock.now())

    assert result.error is None
    assert result.range_start == utc(2026, 10, 12)
    assert result.range_end - result.range_start == timedelta(days=7)
    assert result.total_seconds == 100
