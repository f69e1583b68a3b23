"""Pure functions deriving ride metrics from a recorded GPS path.

No database access.
"""

import math
from typing import Sequence

from src.rides.schemas import GpsPoint

EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates.

    Parameters
    ----------
    lat1, lon1 : float
        First point in decimal degrees
    lat2, lon2 : float
        Second point in decimal degrees

    Returns
    -------
    float
        Distance in kilometers
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def path_distance(gps_path: Sequence[GpsPoint]) -> float:
    """Total distance along a GPS path in kilometers (0 for < 2 points)."""
    return sum(
        haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)
        for a, b in zip(gps_path, gps_path[1:])
    )


def path_elevation_gain(gps_path: Sequence[GpsPoint]) -> float:
    """Sum of positive altitude changes along a GPS path in meters."""
    return sum(
        max(b.altitude - a.altitude, 0.0) for a, b in zip(gps_path, gps_path[1:])
    )
