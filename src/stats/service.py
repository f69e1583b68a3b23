"""Service layer orchestrating rewards and statistics for ride events."""

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.rides.models import Ride
from src.rides.schemas import RideCreate
from src.rides.service import ride_service
from src.stats.calculator import (
    compute_coins,
    format_week_label,
    get_year_boundaries,
)
from src.stats.exceptions import InvalidInput, ObjectNotFound
from src.stats.locks import user_locks
from src.stats.models import WeeklyStats
from src.stats.schemas import (
    BestEffortsResponse,
    LongestRidesResponse,
    RecomputeResponse,
    RideSample,
    UserAggregate,
    UserStatsResponse,
    WeeklyGraphPoint,
    YearSummary,
)
from src.stats.user_aggregates import UserAggregateStore
from src.stats.weekly_aggregates import WeeklyAggregateStore

settings = get_settings()


def _check_metrics(ride: RideSample) -> None:
    for name in ("moving_time", "elevation_gained"):
        value = getattr(ride, name)
        if value < 0:
            raise InvalidInput(f"{name} must be non-negative, got {value}")


class StatisticsService:
    """Entry point of the statistics engine for the rest of the app.

    Every operation that mutates a user's aggregates runs while holding that
    user's permit and commits exactly once; on any error the session is
    rolled back and the error re-raised, so nothing is half-applied.
    """

    def __init__(
        self,
        user_store: UserAggregateStore | None = None,
        weekly_store: WeeklyAggregateStore | None = None,
    ):
        self.user_store = user_store or UserAggregateStore(ride_service.find_rides_by_user)
        self.weekly_store = weekly_store or WeeklyAggregateStore()

    async def on_ride_created(
        self, db: AsyncSession, ride_data: RideCreate, now: datetime | None = None
    ) -> Ride:
        """Record a ride and credit it to the user's statistics.

        Parameters
        ----------
        db : AsyncSession
            Database session
        ride_data : RideCreate
            Validated ride payload
        now : datetime | None
            Reference time for "this year"; defaults to the current UTC time

        Returns
        -------
        Ride
            The persisted ride with ``coins_earned`` set

        Raises
        ------
        ObjectNotFound
            If the user does not exist
        InvalidInput
            If a ride metric is negative
        """
        user_id = ride_data.user_id

        async with user_locks.hold(user_id):
            try:
                # Make sure the user exists before anything is staged
                await self.user_store.snapshot(db, user_id)

                ride = ride_service.build_ride(ride_data)
                ride.coins_earned = compute_coins(ride.distance, ride.average_speed)

                sample = RideSample.model_validate(ride)
                _check_metrics(sample)

                await ride_service.add_ride(db, ride)
                await self.user_store.apply_new_ride(db, user_id, sample, now)
                await self.weekly_store.apply_ride(db, user_id, sample)

                await db.commit()
            except Exception:
                await db.rollback()
                raise

        await db.refresh(ride)

        logger.info(
            "Ride credited",
            user_id=user_id,
            ride_id=ride.id,
            distance=ride.distance,
            coins=ride.coins_earned,
        )
        return ride

    async def on_ride_deleted(
        self,
        db: AsyncSession,
        ride: Ride,
        full_recompute: bool = False,
        now: datetime | None = None,
    ) -> None:
        """Delete a ride and take it back out of the statistics.

        Parameters
        ----------
        db : AsyncSession
            Database session
        ride : Ride
            The ride to delete
        full_recompute : bool
            False: only the ride's coins are reversed (cheap, common case).
            True: the user's statistics and weekly rollups are rebuilt from
            the remaining rides, e.g. after moderation.
        now : datetime | None
            Reference time for "this year"; defaults to the current UTC time

        Raises
        ------
        ObjectNotFound
            If the ride is already gone (a concurrent delete won) or its
            user does not exist
        """
        user_id = ride.user_id
        ride_id = ride.id
        sample = RideSample.model_validate(ride)

        async with user_locks.hold(user_id):
            try:
                # Checked under the permit so only one delete reverses the coins
                if not await ride_service.remove_ride(db, ride_id):
                    raise ObjectNotFound(f"Ride {ride_id} not found")

                await self.user_store.reverse_ride(db, user_id, sample)

                if full_recompute:
                    await self._recompute(db, user_id, now)

                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Ride removed from stats",
            user_id=user_id,
            ride_id=ride_id,
            coins=sample.coins_earned,
            full_recompute=full_recompute,
        )

    async def _recompute(
        self, db: AsyncSession, user_id: int, now: datetime | None
    ) -> tuple[UserAggregate, int]:
        aggregate, ride_count = await self.user_store.recompute(db, user_id, now)

        rides = await ride_service.find_rides_by_user(db, user_id)
        await self.weekly_store.rebuild(
            db, user_id, (RideSample.model_validate(ride) for ride in rides)
        )
        return aggregate, ride_count

    async def recompute_all(
        self, db: AsyncSession, user_id: int, now: datetime | None = None
    ) -> RecomputeResponse:
        """Rebuild a user's statistics and weekly rollups from their rides.

        Raises
        ------
        ObjectNotFound
            If the user does not exist
        """
        async with user_locks.hold(user_id):
            try:
                aggregate, ride_count = await self._recompute(db, user_id, now)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info("User stats recomputed", user_id=user_id, rides=ride_count)
        return RecomputeResponse(user_id=user_id, rides_replayed=ride_count, stats=aggregate)

    async def verify(
        self, db: AsyncSession, user_id: int, now: datetime | None = None
    ) -> UserAggregate:
        """Check stored statistics against the ride history.

        Raises
        ------
        ObjectNotFound
            If the user does not exist
        AggregateInconsistent
            If the stored statistics drifted
        """
        return await self.user_store.verify(
            db, user_id, settings.STATS_VERIFY_TOLERANCE, now
        )

    async def get_user_stats(self, db: AsyncSession, user_id: int) -> UserStatsResponse:
        aggregate = await self.user_store.snapshot(db, user_id)
        return UserStatsResponse(
            user_id=user_id,
            total_distance=aggregate.total_distance,
            distance_this_year=aggregate.distance_this_year,
            total_coins=aggregate.total_coins,
            longest_ride_distance=aggregate.longest_ride_distance,
            longest_ride_time=aggregate.longest_ride_time,
            max_elevation_gained=aggregate.max_elevation_gained,
            best_efforts=self._best_efforts(aggregate),
        )

    @staticmethod
    def _best_efforts(aggregate: UserAggregate) -> BestEffortsResponse:
        return BestEffortsResponse(
            **{f"best{d}km": best for d, best in aggregate.best_efforts.items()}
        )

    async def get_best_efforts(
        self, db: AsyncSession, user_id: int
    ) -> dict[str, float | None]:
        """Best estimated times in seconds keyed "10km" ... "100km"."""
        aggregate = await self.user_store.snapshot(db, user_id)
        return {f"{d}km": best for d, best in aggregate.best_efforts.items()}

    async def get_longest_rides(
        self, db: AsyncSession, user_id: int
    ) -> LongestRidesResponse:
        aggregate = await self.user_store.snapshot(db, user_id)
        return LongestRidesResponse(
            longest_distance=aggregate.longest_ride_distance,
            longest_time=aggregate.longest_ride_time,
            max_elevation=aggregate.max_elevation_gained,
        )

    async def get_weekly_stats(
        self, db: AsyncSession, user_id: int, weeks: int | None = None
    ) -> list[WeeklyStats]:
        """Stored weekly rollups, most recent first."""
        await self.user_store.snapshot(db, user_id)
        return await self.weekly_store.recent(db, user_id, weeks or settings.STATS_GRAPH_WEEKS)

    async def get_weekly_graph(
        self, db: AsyncSession, user_id: int, weeks: int | None = None
    ) -> list[WeeklyGraphPoint]:
        """Weekly distance graph, oldest week first.

        Parameters
        ----------
        db : AsyncSession
            Database session
        user_id : int
            User ID
        weeks : int | None
            Number of most recent weeks; defaults to STATS_GRAPH_WEEKS

        Returns
        -------
        list[WeeklyGraphPoint]
            Weeks that have a rollup, ascending by ISO year and week
        """
        await self.user_store.snapshot(db, user_id)
        series = await self.weekly_store.graph_series(
            db, user_id, weeks or settings.STATS_GRAPH_WEEKS
        )
        return [
            WeeklyGraphPoint(
                week=format_week_label(weekly.iso_week),
                year=weekly.iso_year,
                distance=weekly.total_distance,
                rides=weekly.total_rides,
                coins=weekly.total_coins,
                average_speed=weekly.average_speed,
            )
            for weekly in series
        ]

    async def get_year_summary(
        self, db: AsyncSession, user_id: int, year: int | None = None
    ) -> YearSummary:
        """Totals over the rides of one calendar year (UTC).

        Parameters
        ----------
        db : AsyncSession
            Database session
        user_id : int
            User ID
        year : int | None
            Calendar year; defaults to the current one

        Returns
        -------
        YearSummary
            Ride count, distance, coins, moving time, average and longest
            ride distance for the year
        """
        await self.user_store.snapshot(db, user_id)
        year = year or datetime.now(timezone.utc).year
        start, end = get_year_boundaries(year)

        rides = await ride_service.get_rides_in_range(db, user_id, start, end)

        total_distance = sum(ride.distance for ride in rides)
        return YearSummary(
            year=year,
            total_rides=len(rides),
            total_distance=total_distance,
            total_coins=sum(ride.coins_earned for ride in rides),
            total_moving_time=sum(ride.moving_time for ride in rides),
            average_distance=total_distance / len(rides) if rides else 0.0,
            longest_ride=max((ride.distance for ride in rides), default=0.0),
        )


# Singleton instance
stats_service = StatisticsService()
