"""Pydantic schemas for the statistics engine and its API responses."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

BEST_EFFORT_DISTANCES: tuple[int, ...] = (10, 20, 25, 50, 75, 100)


def best_effort_field(distance_km: int) -> str:
    """Column/attribute name holding the best time for ``distance_km``."""
    return f"best_{distance_km}km_time"


class RideSample(BaseModel):
    """The part of a ride the statistics engine consumes.

    Attributes
    ----------
    distance : float
        Distance in kilometers
    average_speed : float
        Average speed in km/h
    moving_time : int
        Moving time in seconds
    elevation_gained : float
        Elevation gained in meters
    activity_date : datetime
        When the ride happened
    coins_earned : int
        Coins credited for the ride
    """

    distance: float
    average_speed: float
    moving_time: int
    elevation_gained: float
    activity_date: datetime
    coins_earned: int = 0

    model_config = ConfigDict(from_attributes=True, frozen=True)


class UserAggregate(BaseModel):
    """Running statistics for one user.

    Sums and records start at 0; best-effort times start at None, meaning no
    ride has covered that distance yet.
    """

    total_distance: float = 0.0
    distance_this_year: float = 0.0
    total_coins: int = 0
    longest_ride_distance: float = 0.0
    longest_ride_time: int = 0
    max_elevation_gained: float = 0.0
    best_10km_time: float | None = None
    best_20km_time: float | None = None
    best_25km_time: float | None = None
    best_50km_time: float | None = None
    best_75km_time: float | None = None
    best_100km_time: float | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @property
    def best_efforts(self) -> dict[int, float | None]:
        return {d: getattr(self, best_effort_field(d)) for d in BEST_EFFORT_DISTANCES}


class BestEffortsResponse(BaseModel):
    best10km: float | None
    best20km: float | None
    best25km: float | None
    best50km: float | None
    best75km: float | None
    best100km: float | None


class UserStatsResponse(BaseModel):
    user_id: int
    total_distance: float
    distance_this_year: float
    total_coins: int
    longest_ride_distance: float
    longest_ride_time: int
    max_elevation_gained: float
    best_efforts: BestEffortsResponse


class LongestRidesResponse(BaseModel):
    longest_distance: float
    longest_time: int
    max_elevation: float


class WeeklyStatsEntry(BaseModel):
    """One stored weekly rollup."""

    iso_year: int
    iso_week: int
    total_distance: float
    total_rides: int
    total_coins: int
    total_moving_time: int
    average_speed: float
    week_start_date: datetime
    week_end_date: datetime

    model_config = ConfigDict(from_attributes=True)


class WeeklyGraphPoint(BaseModel):
    """One point of the weekly distance graph.

    Attributes
    ----------
    week : str
        Label such as "W7"
    year : int
        ISO week-year
    distance : float
        Kilometers ridden that week
    rides : int
        Number of rides
    coins : int
        Coins earned
    average_speed : float
        Week average speed in km/h
    """

    week: str
    year: int
    distance: float
    rides: int
    coins: int
    average_speed: float


class YearSummary(BaseModel):
    year: int
    total_rides: int
    total_distance: float
    total_coins: int
    total_moving_time: int
    average_distance: float
    longest_ride: float


class RecomputeResponse(BaseModel):
    user_id: int
    rides_replayed: int
    stats: UserAggregate
