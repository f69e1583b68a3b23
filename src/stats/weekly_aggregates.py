"""Per-user ISO-week rollups."""

from datetime import datetime
from typing import Iterable

from loguru import logger
from sqlalchemy import Float, case, cast, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from src.stats.calculator import SECONDS_PER_HOUR, week_of
from src.stats.models import WeeklyStats
from src.stats.schemas import RideSample

INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _average_speed(total_distance, total_moving_time):
    """SQL expression: km/h from totals, 0 when there is no moving time."""
    return case(
        (
            total_moving_time > 0,
            total_distance / (cast(total_moving_time, Float) / SECONDS_PER_HOUR),
        ),
        else_=0.0,
    )


class WeeklyAggregateStore:
    """Get-or-create and atomic increments of WeeklyStats rows.

    Rows are keyed by (user_id, iso_year, iso_week), are never deleted, and
    nothing here commits.
    """

    async def _find(
        self, db: AsyncSession, user_id: int, iso_year: int, iso_week: int
    ) -> WeeklyStats | None:
        result = await db.execute(
            select(WeeklyStats)
            .filter(
                WeeklyStats.user_id == user_id,
                WeeklyStats.iso_year == iso_year,
                WeeklyStats.iso_week == iso_week,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(
        self, db: AsyncSession, user_id: int, instant: datetime
    ) -> WeeklyStats:
        """Weekly rollup for the ISO week containing ``instant``.

        Parameters
        ----------
        db : AsyncSession
            Database session
        user_id : int
            User ID
        instant : datetime
            Any moment in the wanted week

        Returns
        -------
        WeeklyStats
            Existing row, or a new one with zeroed totals

        Notes
        -----
        Creation is ``INSERT ... ON CONFLICT DO NOTHING`` on the unique key
        followed by a read, so two first writers for the same week settle on
        the same row instead of one of them failing or duplicating it.
        """
        week = week_of(instant)

        weekly = await self._find(db, user_id, week.iso_year, week.iso_week)
        if weekly is not None:
            return weekly

        insert = INSERT_BY_DIALECT[db.get_bind().dialect.name]
        await db.execute(
            insert(WeeklyStats)
            .values(
                user_id=user_id,
                iso_year=week.iso_year,
                iso_week=week.iso_week,
                total_distance=0.0,
                total_rides=0,
                total_coins=0,
                total_moving_time=0,
                average_speed=0.0,
                week_start_date=week.week_start,
                week_end_date=week.week_end,
            )
            .on_conflict_do_nothing(
                index_elements=["user_id", "iso_year", "iso_week"]
            )
        )

        logger.debug(
            "Created weekly stats",
            user_id=user_id,
            iso_year=week.iso_year,
            iso_week=week.iso_week,
        )
        return await self._find(db, user_id, week.iso_year, week.iso_week)

    async def apply_ride(
        self, db: AsyncSession, user_id: int, ride: RideSample
    ) -> WeeklyStats:
        """Add a ride to the rollup of its week.

        Totals are incremented and the average speed recomputed from the
        new totals in a single UPDATE, so concurrent rides never lose an
        increment.
        """
        weekly = await self.get_or_create(db, user_id, ride.activity_date)

        new_distance = WeeklyStats.total_distance + ride.distance
        new_moving_time = WeeklyStats.total_moving_time + ride.moving_time

        await db.execute(
            update(WeeklyStats)
            .where(WeeklyStats.id == weekly.id)
            .values(
                total_distance=new_distance,
                total_rides=WeeklyStats.total_rides + 1,
                total_coins=WeeklyStats.total_coins + ride.coins_earned,
                total_moving_time=new_moving_time,
                average_speed=_average_speed(new_distance, new_moving_time),
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(weekly)

        return weekly

    async def rebuild(
        self, db: AsyncSession, user_id: int, rides: Iterable[RideSample]
    ) -> int:
        """Reset all of a user's weekly rows and replay the given rides.

        Rows of weeks that no longer have rides are kept, zeroed.

        Returns
        -------
        int
            Number of rides replayed
        """
        await db.execute(
            update(WeeklyStats)
            .where(WeeklyStats.user_id == user_id)
            .values(
                total_distance=0.0,
                total_rides=0,
                total_coins=0,
                total_moving_time=0,
                average_speed=0.0,
            )
            .execution_options(synchronize_session=False)
        )

        replayed = 0
        for ride in rides:
            await self.apply_ride(db, user_id, ride)
            replayed += 1

        return replayed

    async def recent(
        self, db: AsyncSession, user_id: int, number_of_weeks: int
    ) -> list[WeeklyStats]:
        """The user's most recent weekly rollups, newest first."""
        result = await db.execute(
            select(WeeklyStats)
            .filter(WeeklyStats.user_id == user_id)
            .order_by(WeeklyStats.iso_year.desc(), WeeklyStats.iso_week.desc())
            .limit(number_of_weeks)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def graph_series(
        self, db: AsyncSession, user_id: int, number_of_weeks: int
    ) -> list[WeeklyStats]:
        """The ``number_of_weeks`` most recent rollups, oldest first."""
        weeks = await self.recent(db, user_id, number_of_weeks)
        weeks.reverse()
        return weeks
