from datetime import datetime, timedelta, timezone

import pytest

from src.rides.geo import haversine_distance, path_distance, path_elevation_gain
from src.rides.schemas import GpsPoint

START = datetime(2026, 10, 14, 8, 0, tzinfo=timezone.utc)


def point(lat: float, lon: float, alt: float = 0.0, minute: int = 0) -> GpsPoint:
    return GpsPoint(latitude=lat, longitude=lon, altitude=alt, timestamp=START + timedelta(minutes=minute))


def test_haversine_same_point_is_zero():
    assert haversine_distance(43.25, 76.95, 43.25, 76.95) == 0.0


def test_haversine_one_degree_of_latitude():
    assert haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, abs=0.01)


def test_path_distance_sums_segments():
    path = [point(0.0, 0.0), point(1.0, 0.0, minute=1), point(2.0, 0.0, minute=2)]
    assert path_distance(path) == pytest.approx(2 * 111.19, abs=0.02)


@pytest.mark.parametrize("path", [[], [point(43.25, 76.95)]])
def test_path_distance_needs_two_points(path):
    assert path_distance(path) == 0.0


def test_elevation_gain_counts_climbs_only():
    path = [
        point(0.0, 0.0, alt=100.0),
        point(0.01, 0.0, alt=130.0),
        point(0.02, 0.0, alt=110.0),
        point(0.03, 0.0, alt=125.0),
    ]
    assert path_elevation_gain(path) == pytest.approx(45.0)
