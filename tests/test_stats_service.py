"""Tests for the statistics engine: incremental updates, reversal and recomputation."""

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.rides.models import Ride
from src.rides.schemas import GpsPoint, RideCreate
from src.rides.service import ride_service
from src.stats.calculator import to_utc
from src.stats.exceptions import AggregateInconsistent, InvalidInput, ObjectNotFound
from src.stats.models import WeeklyStats
from src.stats.schemas import RideSample, UserAggregate
from src.stats.service import stats_service
from src.stats.weekly_aggregates import WeeklyAggregateStore
from src.users.models import User

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
WEDNESDAY = datetime(2026, 10, 14, 8, 30, tzinfo=timezone.utc)


def ride_payload(user_id: int, **overrides) -> RideCreate:
    values = {
        "user_id": user_id,
        "ride_name": "Morning Ride",
        "distance": 20.0,
        "average_speed": 25.0,
        "moving_time": 2880,
        "elevation_gained": 150.0,
        "activity_date": WEDNESDAY,
    }
    values.update(overrides)
    return RideCreate(**values)


async def record(db: AsyncSession, user_id: int, **overrides) -> Ride:
    return await stats_service.on_ride_created(db, ride_payload(user_id, **overrides), now=NOW)


async def count_rows(db: AsyncSession, model, user_id: int) -> int:
    result = await db.execute(select(func.count()).select_from(model).filter(model.user_id == user_id))
    return result.scalar_one()


class TestRideCreated:
    async def test_credits_coins_and_statistics(self, db_session, test_user):
        ride = await record(db_session, test_user.id)

        assert ride.id is not None
        assert ride.coins_earned == 250

        stats = await stats_service.get_user_stats(db_session, test_user.id)
        assert stats.total_distance == 20.0
        assert stats.distance_this_year == 20.0
        assert stats.total_coins == 250
        assert stats.longest_ride_distance == 20.0
        assert stats.longest_ride_time == 2880
        assert stats.max_elevation_gained == 150.0
        assert stats.best_efforts.best10km == pytest.approx(1440.0)
        assert stats.best_efforts.best20km == pytest.approx(2880.0)
        assert stats.best_efforts.best25km is None

    async def test_creates_weekly_rollup(self, db_session, test_user):
        await record(db_session, test_user.id)

        [weekly] = await stats_service.get_weekly_stats(db_session, test_user.id)
        assert (weekly.iso_year, weekly.iso_week) == (2026, 42)
        assert weekly.total_distance == 20.0
        assert weekly.total_rides == 1
        assert weekly.total_coins == 250
        assert weekly.total_moving_time == 2880
        assert weekly.average_speed == pytest.approx(25.0)
        assert to_utc(weekly.week_start_date) == datetime(2026, 10, 12, tzinfo=timezone.utc)
        assert to_utc(weekly.week_end_date) == datetime(
            2026, 10, 18, 23, 59, 59, 999000, tzinfo=timezone.utc
        )

    async def test_weekly_average_speed_from_totals(self, db_session, test_user):
        await record(db_session, test_user.id)
        await record(db_session, test_user.id, distance=10.0, average_speed=20.0, moving_time=1800)

        [weekly] = await stats_service.get_weekly_stats(db_session, test_user.id)
        assert weekly.total_rides == 2
        assert weekly.total_distance == 30.0
        assert weekly.total_coins == 350
        assert weekly.average_speed == pytest.approx(30.0 / (4680 / 3600))

    async def test_weekly_average_speed_without_moving_time(self, db_session, test_user):
        await record(db_session, test_user.id, moving_time=0)

        [weekly] = await stats_service.get_weekly_stats(db_session, test_user.id)
        assert weekly.total_rides == 1
        assert weekly.total_moving_time == 0
        assert weekly.average_speed == 0.0

    async def test_previous_year_ride_not_counted_this_year(self, db_session, test_user):
        await record(db_session, test_user.id, activity_date=datetime(2025, 11, 3, tzinfo=timezone.utc))

        stats = await stats_service.get_user_stats(db_session, test_user.id)
        assert stats.total_distance == 20.0
        assert stats.distance_this_year == 0.0

    async def test_best_efforts_only_improve(self, db_session, test_user):
        await record(db_session, test_user.id)
        await record(db_session, test_user.id, average_speed=20.0, moving_time=3600)
        bests = await stats_service.get_best_efforts(db_session, test_user.id)
        assert bests["10km"] == pytest.approx(1440.0)

        await record(db_session, test_user.id, average_speed=30.0, moving_time=2400)
        bests = await stats_service.get_best_efforts(db_session, test_user.id)
        assert bests["10km"] == pytest.approx(1200.0)
        assert bests["20km"] == pytest.approx(2400.0)
        assert bests["100km"] is None

    async def test_longest_rides(self, db_session, test_user):
        await record(db_session, test_user.id)
        await record(db_session, test_user.id, distance=12.0, moving_time=4000, elevation_gained=900.0)

        longest = await stats_service.get_longest_rides(db_session, test_user.id)
        assert longest.longest_distance == 20.0
        assert longest.longest_time == 4000
        assert longest.max_elevation == 900.0

    async def test_distance_derived_from_gps_path(self, db_session, test_user):
        path = [
            GpsPoint(latitude=0.0, longitude=0.0, altitude=100.0, timestamp=WEDNESDAY),
            GpsPoint(latitude=0.1, longitude=0.0, altitude=140.0, timestamp=WEDNESDAY),
        ]
        ride = await record(db_session, test_user.id, distance=None, elevation_gained=None, gps_path=path)

        assert ride.distance == pytest.approx(11.12, abs=0.01)
        assert ride.elevation_gained == pytest.approx(40.0)
        assert ride.coins_earned == round(ride.distance * 25.0 / 2)

    async def test_unknown_user(self, db_session):
        with pytest.raises(ObjectNotFound):
            await record(db_session, 999)

        assert await count_rows(db_session, Ride, 999) == 0

    async def test_invalid_metrics_roll_back(self, db_session, test_user):
        bad = RideCreate.model_construct(
            user_id=test_user.id, distance=-5.0, average_speed=20.0, moving_time=600
        )

        with pytest.raises(InvalidInput):
            await stats_service.on_ride_created(db_session, bad, now=NOW)

        assert await count_rows(db_session, Ride, test_user.id) == 0
        assert await count_rows(db_session, WeeklyStats, test_user.id) == 0
        assert await stats_service.user_store.snapshot(db_session, test_user.id) == UserAggregate()


class TestRideDeleted:
    async def test_coin_only_reversal(self, db_session, test_user):
        first = await record(db_session, test_user.id)
        await record(db_session, test_user.id, distance=10.0, average_speed=20.0, moving_time=1800)

        await stats_service.on_ride_deleted(db_session, first, now=NOW)

        stats = await stats_service.get_user_stats(db_session, test_user.id)
        assert stats.total_coins == 100
        # Everything except coins still counts the deleted ride
        assert stats.total_distance == 30.0
        assert stats.longest_ride_distance == 20.0
        assert await count_rows(db_session, Ride, test_user.id) == 1

    async def test_full_recompute_on_last_ride_resets_everything(self, db_session, test_user):
        ride = await record(db_session, test_user.id)

        await stats_service.on_ride_deleted(db_session, ride, full_recompute=True, now=NOW)

        assert await stats_service.user_store.snapshot(db_session, test_user.id) == UserAggregate()

        # Weekly rows are kept, zeroed
        [weekly] = await stats_service.get_weekly_stats(db_session, test_user.id)
        assert weekly.total_rides == 0
        assert weekly.total_distance == 0.0
        assert weekly.total_coins == 0
        assert weekly.average_speed == 0.0

    async def test_full_recompute_restores_previous_records(self, db_session, test_user):
        await record(db_session, test_user.id, distance=10.0, average_speed=20.0, moving_time=1800)
        fast = await record(db_session, test_user.id, average_speed=30.0, moving_time=2400)

        await stats_service.on_ride_deleted(db_session, fast, full_recompute=True, now=NOW)

        stats = await stats_service.get_user_stats(db_session, test_user.id)
        assert stats.total_distance == 10.0
        assert stats.total_coins == 100
        assert stats.longest_ride_distance == 10.0
        assert stats.best_efforts.best10km == pytest.approx(1800.0)
        assert stats.best_efforts.best20km is None

    async def test_second_delete_of_same_ride(self, db_session, test_user):
        ride = await record(db_session, test_user.id)
        await record(db_session, test_user.id, distance=10.0, average_speed=20.0, moving_time=1800)
        await stats_service.on_ride_deleted(db_session, ride, now=NOW)

        with pytest.raises(ObjectNotFound):
            await stats_service.on_ride_deleted(db_session, ride, now=NOW)

        stats = await stats_service.get_user_stats(db_session, test_user.id)
        assert stats.total_coins == 100

    async def test_reverse_for_unknown_user(self, db_session):
        sample = RideSample(
            distance=1.0,
            average_speed=1.0,
            moving_time=60,
            elevation_gained=0.0,
            activity_date=WEDNESDAY,
            coins_earned=1,
        )
        with pytest.raises(ObjectNotFound):
            await stats_service.user_store.reverse_ride(db_session, 999, sample)


class TestRecompute:
    async def test_matches_incremental(self, db_session, test_user):
        await record(db_session, test_user.id)
        await record(
            db_session,
            test_user.id,
            distance=55.5,
            average_speed=27.0,
            moving_time=7400,
            elevation_gained=620.0,
            activity_date=datetime(2026, 3, 1, 7, 0, tzinfo=timezone.utc),
        )
        await record(
            db_session,
            test_user.id,
            distance=12.25,
            average_speed=18.0,
            activity_date=datetime(2025, 12, 29, 18, 0, tzinfo=timezone.utc),
        )
        incremental = await stats_service.user_store.snapshot(db_session, test_user.id)
        weekly_before = [
            (w.iso_year, w.iso_week, w.total_distance, w.total_rides, w.total_coins)
            for w in await stats_service.get_weekly_stats(db_session, test_user.id)
        ]

        result = await stats_service.recompute_all(db_session, test_user.id, now=NOW)

        assert result.rides_replayed == 3
        assert result.stats == incremental
        assert await stats_service.user_store.snapshot(db_session, test_user.id) == incremental
        weekly_after = [
            (w.iso_year, w.iso_week, w.total_distance, w.total_rides, w.total_coins)
            for w in await stats_service.get_weekly_stats(db_session, test_user.id)
        ]
        assert weekly_after == weekly_before

    async def test_without_rides(self, db_session, test_user):
        result = await stats_service.recompute_all(db_session, test_user.id, now=NOW)

        assert result.rides_replayed == 0
        assert result.stats == UserAggregate()

    async def test_unknown_user(self, db_session):
        with pytest.raises(ObjectNotFound):
            await stats_service.recompute_all(db_session, 999, now=NOW)

    async def test_repairs_drift_after_coin_only_delete(self, db_session, test_user):
        first = await record(db_session, test_user.id)
        await record(db_session, test_user.id, distance=10.0, average_speed=20.0, moving_time=1800)
        await stats_service.on_ride_deleted(db_session, first, now=NOW)

        with pytest.raises(AggregateInconsistent) as exc_info:
            await stats_service.verify(db_session, test_user.id, now=NOW)
        assert exc_info.value.user_id == test_user.id
        assert exc_info.value.fields["total_distance"] == (30.0, 10.0)
        assert "longest_ride_distance" in exc_info.value.fields
        assert "total_coins" not in exc_info.value.fields

        await stats_service.recompute_all(db_session, test_user.id, now=NOW)

        stats = await stats_service.verify(db_session, test_user.id, now=NOW)
        assert stats.total_distance == 10.0
        [weekly] = await stats_service.get_weekly_stats(db_session, test_user.id)
        assert weekly.total_rides == 1
        assert weekly.total_distance == 10.0

    async def test_verify_consistent(self, db_session, test_user):
        await record(db_session, test_user.id)
        stats = await stats_service.verify(db_session, test_user.id, now=NOW)
        assert stats.total_coins == 250

    async def test_verify_after_new_year(self, db_session, test_user):
        await record(db_session, test_user.id)
        last_written = datetime(2026, 10, 18, tzinfo=timezone.utc)
        await db_session.execute(
            update(User).where(User.id == test_user.id).values(updated_at=last_written)
        )
        await db_session.commit()
        new_year = datetime(2027, 1, 1, 0, 5, tzinfo=timezone.utc)

        # Last year's this-year distance is stale, not drifted
        stats = await stats_service.verify(db_session, test_user.id, now=new_year)
        assert stats.distance_this_year == 20.0

        await db_session.execute(
            update(User)
            .where(User.id == test_user.id)
            .values(total_distance=99.0, updated_at=last_written)
        )
        await db_session.commit()

        with pytest.raises(AggregateInconsistent) as exc_info:
            await stats_service.verify(db_session, test_user.id, now=new_year)
        assert set(exc_info.value.fields) == {"total_distance"}


class TestWeeklyRollups:
    async def test_iso_week_year_boundaries(self, db_session, test_user):
        await record(db_session, test_user.id, activity_date=datetime(2024, 12, 30, 9, tzinfo=timezone.utc))
        await record(db_session, test_user.id, activity_date=datetime(2021, 1, 1, 9, tzinfo=timezone.utc))

        weeks = await stats_service.get_weekly_stats(db_session, test_user.id)
        assert [(w.iso_year, w.iso_week) for w in weeks] == [(2025, 1), (2020, 53)]

    async def test_graph_is_oldest_first(self, db_session, test_user):
        for day in (5, 14, 21):
            await record(db_session, test_user.id, activity_date=datetime(2026, 10, day, tzinfo=timezone.utc))

        graph = await stats_service.get_weekly_graph(db_session, test_user.id)
        assert [point.week for point in graph] == ["W41", "W42", "W43"]
        assert all(point.year == 2026 for point in graph)
        assert graph[0].distance == 20.0
        assert graph[0].rides == 1

        recent = await stats_service.get_weekly_graph(db_session, test_user.id, weeks=2)
        assert [point.week for point in recent] == ["W42", "W43"]

    async def test_weekly_stats_newest_first(self, db_session, test_user):
        for day in (5, 21):
            await record(db_session, test_user.id, activity_date=datetime(2026, 10, day, tzinfo=timezone.utc))

        weeks = await stats_service.get_weekly_stats(db_session, test_user.id, weeks=1)
        assert [w.iso_week for w in weeks] == [43]

    async def test_get_or_create_is_idempotent(self, db_session, session_maker, test_user):
        store = WeeklyAggregateStore()

        # Row created and committed by another session first
        async with session_maker() as other:
            existing = await store.get_or_create(other, test_user.id, WEDNESDAY)
            await other.commit()

        first = await store.get_or_create(db_session, test_user.id, WEDNESDAY)
        second = await store.get_or_create(db_session, test_user.id, datetime(2026, 10, 18, 23, tzinfo=timezone.utc))

        assert first.id == existing.id
        assert second.id == existing.id
        assert await count_rows(db_session, WeeklyStats, test_user.id) == 1

    async def test_get_or_create_settles_on_existing_row_after_miss(
        self, db_session, test_user, monkeypatch
    ):
        store = WeeklyAggregateStore()
        existing = await store.get_or_create(db_session, test_user.id, WEDNESDAY)
        await db_session.commit()

        # Another writer inserted the week between our lookup and our insert
        real_find = store._find
        misses = []

        async def find_after_race(*args):
            if not misses:
                misses.append(args)
                return None
            return await real_find(*args)

        monkeypatch.setattr(store, "_find", find_after_race)

        weekly = await store.get_or_create(db_session, test_user.id, WEDNESDAY)

        assert misses
        assert weekly.id == existing.id
        assert await count_rows(db_session, WeeklyStats, test_user.id) == 1

    async def test_unknown_user(self, db_session):
        with pytest.raises(ObjectNotFound):
            await stats_service.get_weekly_graph(db_session, 999)


class TestYearSummary:
    async def test_only_rides_of_the_year(self, db_session, test_user):
        await record(db_session, test_user.id)
        await record(db_session, test_user.id, distance=40.0, activity_date=datetime(2026, 1, 1, tzinfo=timezone.utc))
        await record(db_session, test_user.id, distance=99.0, activity_date=datetime(2025, 12, 31, 23, tzinfo=timezone.utc))

        summary = await stats_service.get_year_summary(db_session, test_user.id, 2026)

        assert summary.year == 2026
        assert summary.total_rides == 2
        assert summary.total_distance == 60.0
        assert summary.total_coins == 250 + 500
        assert summary.average_distance == 30.0
        assert summary.longest_ride == 40.0

    async def test_empty_year(self, db_session, test_user):
        summary = await stats_service.get_year_summary(db_session, test_user.id, 2019)

        assert summary.total_rides == 0
        assert summary.average_distance == 0.0
        assert summary.longest_ride == 0.0


async def test_concurrent_rides_for_one_user(file_engine):
    """Two sessions crediting the same user at once lose no increment."""
    maker = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)

    async with maker() as db:
        user = User(name="Racer", email="racer@example.com")
        db.add(user)
        await db.commit()
        user_id = user.id

    async def ride(distance: float):
        async with maker() as db:
            return await record(db, user_id, distance=distance)

    rides = await asyncio.gather(ride(20.0), ride(30.0))

    async with maker() as db:
        stats = await stats_service.user_store.snapshot(db, user_id)
        assert stats.total_distance == 50.0
        assert stats.total_coins == sum(r.coins_earned for r in rides)

        [weekly] = await stats_service.get_weekly_stats(db, user_id)
        assert weekly.total_rides == 2
        assert weekly.total_distance == 50.0
        assert await stats_service.verify(db, user_id, now=NOW) == stats


async def test_concurrent_deletes_reverse_coins_once(file_engine):
    """Two requests deleting the same ride: one wins, the other gets NotFound."""
    maker = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)

    async with maker() as db:
        user = User(name="Racer", email="racer@example.com")
        db.add(user)
        await db.commit()
        user_id = user.id
        ride_id = (await record(db, user_id)).id

    first, second = maker(), maker()
    try:
        # Both requests loaded the ride before either took the user's permit
        loaded = [
            await ride_service.get_ride(first, ride_id),
            await ride_service.get_ride(second, ride_id),
        ]
        results = await asyncio.gather(
            stats_service.on_ride_deleted(first, loaded[0], now=NOW),
            stats_service.on_ride_deleted(second, loaded[1], now=NOW),
            return_exceptions=True,
        )
    finally:
        await first.close()
        await second.close()

    assert results.count(None) == 1
    assert sum(isinstance(result, ObjectNotFound) for result in results) == 1

    async with maker() as db:
        stats = await stats_service.user_store.snapshot(db, user_id)
        assert stats.total_coins == 0
        assert await count_rows(db, Ride, user_id) == 0
