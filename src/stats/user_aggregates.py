"""Per-user running statistics stored on the users table."""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.stats.calculator import (
    apply_ride_to_aggregate,
    counts_toward_year,
    replay_rides,
)
from src.stats.exceptions import AggregateInconsistent, ObjectNotFound
from src.stats.schemas import RideSample, UserAggregate
from src.users.models import User

# Reads a user's full ride history, oldest first
HistoryReader = Callable[[AsyncSession, int], Awaitable[Sequence[object]]]

AGGREGATE_FIELDS = tuple(UserAggregate.model_fields)


class UserAggregateStore:
    """Incremental updates and full recomputation of UserAggregate.

    Callers must hold the user's permit (``user_locks.hold``) around every
    mutating call and own the transaction: nothing here commits, so a
    failure leaves no partial update once the caller rolls back.
    """

    def __init__(self, history_reader: HistoryReader):
        self._read_history = history_reader

    async def _load_user(
        self, db: AsyncSession, user_id: int, for_update: bool = False
    ) -> User:
        query = (
            select(User)
            .filter(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()

        result = await db.execute(query)
        user = result.scalar_one_or_none()
        if user is None:
            raise ObjectNotFound(f"User {user_id} not found")
        return user

    @staticmethod
    def _write(user: User, aggregate: UserAggregate) -> None:
        for field in AGGREGATE_FIELDS:
            setattr(user, field, getattr(aggregate, field))

    async def snapshot(self, db: AsyncSession, user_id: int) -> UserAggregate:
        """Current statistics of a user.

        Raises
        ------
        ObjectNotFound
            If the user does not exist
        """
        user = await self._load_user(db, user_id)
        return UserAggregate.model_validate(user)

    async def apply_new_ride(
        self,
        db: AsyncSession,
        user_id: int,
        ride: RideSample,
        now: datetime | None = None,
    ) -> UserAggregate:
        """Fold a newly created ride into the user's statistics.

        Parameters
        ----------
        db : AsyncSession
            Database session (caller commits)
        user_id : int
            Owner of the ride
        ride : RideSample
            The new ride, with coins already computed
        now : datetime | None
            Reference time for "this year"; defaults to the current UTC time

        Returns
        -------
        UserAggregate
            Statistics after the ride

        Raises
        ------
        ObjectNotFound
            If the user does not exist
        """
        now = now or datetime.now(timezone.utc)
        user = await self._load_user(db, user_id, for_update=True)

        aggregate = apply_ride_to_aggregate(UserAggregate.model_validate(user), ride, now)
        self._write(user, aggregate)
        await db.flush()

        return aggregate

    async def reverse_ride(self, db: AsyncSession, user_id: int, ride: RideSample) -> None:
        """Take a deleted ride's coins back from the user.

        Only coins are reversed. Distance totals, records and best efforts
        stay as they are, because undoing them needs to know whether another
        ride ties or beats the deleted one; use ``recompute`` for that.

        Raises
        ------
        ObjectNotFound
            If the user does not exist
        """
        result = await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(total_coins=User.total_coins - ride.coins_earned)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ObjectNotFound(f"User {user_id} not found")

        logger.debug("Reversed ride coins", user_id=user_id, coins=ride.coins_earned)

    async def _rebuild(
        self, db: AsyncSession, user_id: int, now: datetime
    ) -> tuple[UserAggregate, int]:
        rides = await self._read_history(db, user_id)
        samples = [RideSample.model_validate(ride) for ride in rides]
        return replay_rides(samples, now), len(samples)

    async def recompute(
        self, db: AsyncSession, user_id: int, now: datetime | None = None
    ) -> tuple[UserAggregate, int]:
        """Rebuild the user's statistics from the surviving ride history.

        Every field is reset to its identity value (0, or None for best
        efforts) and the rides are replayed oldest first through the same
        fold ``apply_new_ride`` uses.

        Parameters
        ----------
        db : AsyncSession
            Database session (caller commits)
        user_id : int
            User whose statistics to rebuild
        now : datetime | None
            Reference time for "this year"; defaults to the current UTC time

        Returns
        -------
        tuple[UserAggregate, int]
            The rebuilt statistics and the number of rides replayed

        Raises
        ------
        ObjectNotFound
            If the user does not exist
        """
        now = now or datetime.now(timezone.utc)
        user = await self._load_user(db, user_id, for_update=True)
        stored = UserAggregate.model_validate(user)

        aggregate, ride_count = await self._rebuild(db, user_id, now)

        drift = diff_aggregates(stored, aggregate, tolerance=0.0)
        if drift:
            logger.info(
                "Recompute corrected user stats",
                user_id=user_id,
                fields=sorted(drift),
            )

        self._write(user, aggregate)
        await db.flush()

        return aggregate, ride_count

    async def verify(
        self,
        db: AsyncSession,
        user_id: int,
        tolerance: float,
        now: datetime | None = None,
    ) -> UserAggregate:
        """Check stored statistics against the ride history without writing.

        Returns
        -------
        UserAggregate
            The stored statistics, when consistent

        Raises
        ------
        ObjectNotFound
            If the user does not exist
        AggregateInconsistent
            If any field differs by more than ``tolerance``

        Notes
        -----
        ``distance_this_year`` is only compared when the user row was last
        written in the current year. A value written last year still counts
        last year's rides until the next ride or recompute rolls it over,
        which is expected and not reported as drift.
        """
        now = now or datetime.now(timezone.utc)
        user = await self._load_user(db, user_id)
        stored = UserAggregate.model_validate(user)
        fresh, _ = await self._rebuild(db, user_id, now)

        drift = diff_aggregates(stored, fresh, tolerance)
        if not written_this_year(user, now):
            drift.pop("distance_this_year", None)
        if drift:
            logger.warning("User stats drifted from ride history", user_id=user_id, drift=drift)
            raise AggregateInconsistent(user_id, drift)

        return stored


def written_this_year(user: User, now: datetime) -> bool:
    """Whether the user row was last updated in the calendar year of ``now``."""
    if user.updated_at is None:
        return False
    return counts_toward_year(user.updated_at, now)


def diff_aggregates(
    stored: UserAggregate, fresh: UserAggregate, tolerance: float
) -> dict[str, tuple]:
    """Fields whose values differ by more than ``tolerance``.

    A field that is None on one side only always counts as different.
    """
    drift = {}
    for field in AGGREGATE_FIELDS:
        old, new = getattr(stored, field), getattr(fresh, field)
        if old is None or new is None:
            if old is not new:
                drift[field] = (old, new)
        elif abs(old - new) > tolerance:
            drift[field] = (old, new)
    return drift
