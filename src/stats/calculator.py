"""Pure functions for reward and statistics calculations.

No database access - the stores in this package persist what these
functions compute, so incremental updates and full recomputation share one
definition of every rule.
"""

import math
from datetime import datetime, time, timedelta, timezone
from typing import Iterable, NamedTuple

from src.stats.exceptions import InvalidInput
from src.stats.schemas import (
    BEST_EFFORT_DISTANCES,
    RideSample,
    UserAggregate,
    best_effort_field,
)

SECONDS_PER_HOUR = 3600


def compute_coins(distance: float, average_speed: float) -> int:
    """Coins earned for a ride: distance x average speed / 2, rounded.

    Parameters
    ----------
    distance : float
        Ride distance in kilometers
    average_speed : float
        Average speed in km/h

    Returns
    -------
    int
        Coins earned

    Raises
    ------
    InvalidInput
        If either metric is negative or not a finite number

    Notes
    -----
    Rounding is half-up: 0.5 -> 1, 1.5 -> 2, 2.5 -> 3. Python's built-in
    ``round`` rounds half to even and would give 0, 2, 2.
    """
    for name, value in (("distance", distance), ("average_speed", average_speed)):
        if not math.isfinite(value) or value < 0:
            raise InvalidInput(f"{name} must be a non-negative number, got {value}")

    raw = distance * average_speed / 2
    whole = math.floor(raw)
    # Compare the fraction, not raw + 0.5, which can round up to the next integer
    return whole + (1 if raw - whole >= 0.5 else 0)


class IsoWeek(NamedTuple):
    """ISO-8601 week containing an instant.

    ``iso_year`` is the ISO week-year, which differs from the calendar year
    for days around New Year (e.g. 2024-12-30 is 2025-W01).
    """

    iso_year: int
    iso_week: int
    week_start: datetime
    week_end: datetime


def to_utc(instant: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def week_of(instant: datetime) -> IsoWeek:
    """Resolve the ISO week an instant falls in.

    Parameters
    ----------
    instant : datetime
        Any moment; evaluated in UTC

    Returns
    -------
    IsoWeek
        ISO year and week number, with week_start on Monday 00:00:00.000
        and week_end on Sunday 23:59:59.999 (UTC)
    """
    moment = to_utc(instant)
    iso_year, iso_week, iso_weekday = moment.isocalendar()

    monday = moment.date() - timedelta(days=iso_weekday - 1)
    week_start = datetime.combine(monday, time.min, tzinfo=timezone.utc)
    week_end = week_start + timedelta(days=7) - timedelta(milliseconds=1)

    return IsoWeek(iso_year, iso_week, week_start, week_end)


def get_year_boundaries(year: int) -> tuple[datetime, datetime]:
    """Jan 1 00:00 UTC of ``year`` and of the following year (exclusive end)."""
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    return start, end


def update_best_efforts(
    current_bests: dict[int, float | None],
    distance: float,
    average_speed: float,
    target_distances: Iterable[int] = BEST_EFFORT_DISTANCES,
) -> dict[int, float | None]:
    """Fold one ride into the best-effort times.

    Parameters
    ----------
    current_bests : dict[int, float | None]
        Best time in seconds per target distance (km); None = no record yet
    distance : float
        Ride distance in kilometers
    average_speed : float
        Ride average speed in km/h
    target_distances : Iterable[int]
        Distances to track

    Returns
    -------
    dict[int, float | None]
        New mapping; ``current_bests`` is left untouched

    Notes
    -----
    The time for a distance D is estimated from the whole-ride pace,
    ``D / average_speed * 3600``, as if the ride were ridden at constant
    speed. Records only ever improve: a new estimate replaces the old one
    only when strictly faster. A ride without a positive average speed has
    no usable pace and sets nothing.
    """
    bests = dict(current_bests)

    if average_speed <= 0:
        return bests

    for target in target_distances:
        if distance < target:
            continue

        estimated = target / average_speed * SECONDS_PER_HOUR
        current = bests.get(target)
        if current is None or estimated < current:
            bests[target] = estimated

    return bests


def counts_toward_year(activity_date: datetime, now: datetime) -> bool:
    """Whether a ride falls in the calendar year of ``now`` (both in UTC)."""
    return to_utc(activity_date).year == to_utc(now).year


def apply_ride_to_aggregate(
    aggregate: UserAggregate, ride: RideSample, now: datetime
) -> UserAggregate:
    """Fold one ride into a user's running statistics.

    Used both for incremental updates and for replaying the whole history
    during recomputation, so the two always agree.

    Parameters
    ----------
    aggregate : UserAggregate
        Statistics before the ride
    ride : RideSample
        The ride to add
    now : datetime
        Decides which calendar year counts as "this year"

    Returns
    -------
    UserAggregate
        Statistics including the ride

    Notes
    -----
    Records (longest distance, longest time, max elevation) use strict
    greater-than, so on a tie the earlier ride stays the record.
    """
    changes = {
        "total_distance": aggregate.total_distance + ride.distance,
        "total_coins": aggregate.total_coins + ride.coins_earned,
    }

    if counts_toward_year(ride.activity_date, now):
        changes["distance_this_year"] = aggregate.distance_this_year + ride.distance

    if ride.distance > aggregate.longest_ride_distance:
        changes["longest_ride_distance"] = ride.distance

    if ride.moving_time > aggregate.longest_ride_time:
        changes["longest_ride_time"] = ride.moving_time

    if ride.elevation_gained > aggregate.max_elevation_gained:
        changes["max_elevation_gained"] = ride.elevation_gained

    bests = update_best_efforts(
        aggregate.best_efforts, ride.distance, ride.average_speed
    )
    for target, best in bests.items():
        changes[best_effort_field(target)] = best

    return aggregate.model_copy(update=changes)


def replay_rides(rides: Iterable[RideSample], now: datetime) -> UserAggregate:
    """Rebuild a user's statistics from scratch, in the order given."""
    aggregate = UserAggregate()
    for ride in rides:
        aggregate = apply_ride_to_aggregate(aggregate, ride, now)
    return aggregate


def format_week_label(iso_week: int) -> str:
    return f"W{iso_week}"

