"""Fast distance and geometry calculations.

Haversine is ~10x faster than geopy.geodesic and accurate enough for
trail analysis (< 0.5% error at typical distances).
"""

from __future__ import annotations
import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mtb_difficulty.models import TrackPoint

# Earth's mean radius in meters
EARTH_RADIUS_M = 6_371_000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points using Haversine formula.

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Distance in meters
    """
    # Convert to radians
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    # Haversine formula
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.asin(math.sqrt(min(a, 1.0)))

    return EARTH_RADIUS_M * c


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate initial bearing from point 1 to point 2.

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Bearing in degrees (0-360, where 0=North, 90=East)
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlon = math.radians(lon2 - lon1)

    x = math.sin(dlon) * math.cos(lat2_rad)
    y = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(dlon)

    bearing = math.degrees(math.atan2(x, y))
    return (bearing + 360) % 360


def distance_between(a: TrackPoint, b: TrackPoint) -> float:
    """Haversine distance in meters between two track points."""
    return haversine_distance(a.lat, a.lon, b.lat, b.lon)


def bearing_between(a: TrackPoint, b: TrackPoint) -> float:
    """Initial bearing in degrees [0, 360) from track point a to b."""
    return calculate_bearing(a.lat, a.lon, b.lat, b.lon)


def heading_change(bearing1: float, bearing2: float) -> float:
    """Absolute change between two bearings, wrapped to at most 180 degrees."""
    change = abs(bearing2 - bearing1)
    if change > 180:
        change = 360 - change
    return change


def step_distances(points: list[TrackPoint]) -> list[float]:
    """Distance in meters of each step; element i is the step points[i] -> points[i+1]."""
    return [distance_between(points[i - 1], points[i]) for i in range(1, len(points))]
