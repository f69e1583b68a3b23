"""Ride service for CRUD operations and ride-history reads."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.rides.geo import path_distance, path_elevation_gain
from src.rides.models import Ride
from src.rides.schemas import RideCreate

logger = logging.getLogger(__name__)


class RideService:
    """Service for managing rides in the database.

    Writes here only stage changes (add/delete + flush); the stats service
    owns the transaction so a ride and the aggregates it feeds are committed
    together.
    """

    async def get_ride(self, db: AsyncSession, ride_id: int) -> Optional[Ride]:
        """Get ride by ID.

        Parameters
        ----------
        db : AsyncSession
            Database session
        ride_id : int
            Ride ID

        Returns
        -------
        Ride | None
            Ride if found, None otherwise
        """
        result = await db.execute(select(Ride).filter(Ride.id == ride_id))
        return result.scalar_one_or_none()

    def build_ride(self, ride_data: RideCreate) -> Ride:
        """Build an unsaved Ride from a request, deriving metrics if missing.

        Parameters
        ----------
        ride_data : RideCreate
            Validated ride payload

        Returns
        -------
        Ride
            Transient ride instance; coins are left for the caller to set
        """
        distance = ride_data.distance
        if distance is None:
            distance = path_distance(ride_data.gps_path)

        elevation_gained = ride_data.elevation_gained
        if elevation_gained is None:
            elevation_gained = path_elevation_gain(ride_data.gps_path)

        elapsed_time = ride_data.elapsed_time
        if elapsed_time is None:
            elapsed_time = ride_data.moving_time

        return Ride(
            user_id=ride_data.user_id,
            ride_name=ride_data.ride_name,
            description=ride_data.description,
            recorded_from=ride_data.recorded_from,
            distance=distance,
            average_speed=ride_data.average_speed,
            max_speed=ride_data.max_speed,
            moving_time=ride_data.moving_time,
            elapsed_time=elapsed_time,
            elevation_gained=elevation_gained,
            activity_date=ride_data.activity_date,
            coins_earned=0,
            gps_path=[point.model_dump(mode="json") for point in ride_data.gps_path],
        )

    async def add_ride(self, db: AsyncSession, ride: Ride) -> Ride:
        """Stage a new ride and flush so it gets an ID."""
        db.add(ride)
        await db.flush()

        logger.info(
            f"Staged ride {ride.id} for user {ride.user_id}: "
            f"{ride.distance:.2f}km, {ride.coins_earned} coins"
        )
        return ride

    async def remove_ride(self, db: AsyncSession, ride_id: int) -> bool:
        """Stage deletion of a ride.

        Returns
        -------
        bool
            False if the ride was already gone (e.g. deleted by a concurrent
            request), True otherwise
        """
        result = await db.execute(delete(Ride).where(Ride.id == ride_id))
        if result.rowcount == 0:
            return False

        logger.info(f"Staged deletion of ride {ride_id}")
        return True

    async def find_rides_by_user(
        self, db: AsyncSession, user_id: int
    ) -> list[Ride]:
        """Full ride history of a user, oldest first.

        Parameters
        ----------
        db : AsyncSession
            Database session
        user_id : int
            User ID

        Returns
        -------
        list[Ride]
            Rides ordered by activity date, then ID for same-instant rides
        """
        result = await db.execute(
            select(Ride)
            .filter(Ride.user_id == user_id)
            .order_by(Ride.activity_date, Ride.id)
        )
        return list(result.scalars().all())

    async def get_rides_in_range(
        self, db: AsyncSession, user_id: int, start: datetime, end: datetime
    ) -> list[Ride]:
        """Rides of a user with start <= activity_date < end, oldest first."""
        result = await db.execute(
            select(Ride)
            .filter(
                Ride.user_id == user_id,
                Ride.activity_date >= start,
                Ride.activity_date < end,
            )
            .order_by(Ride.activity_date, Ride.id)
        )
        return list(result.scalars().all())

    async def get_user_rides(
        self,
        db: AsyncSession,
        user_id: int,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Ride]:
        """Most recent rides of a user first.

        Parameters
        ----------
        db : AsyncSession
            Database session
        user_id : int
            User ID
        limit : int
            Max number of rides to return
        offset : int
            Number of rides to skip

        Returns
        -------
        list[Ride]
            List of rides
        """
        result = await db.execute(
            select(Ride)
            .filter(Ride.user_id == user_id)
            .order_by(Ride.activity_date.desc(), Ride.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())


ride_service = RideService()
