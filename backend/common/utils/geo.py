"""
Geographic utility functions.

This module provides core geospatial calculations used throughout the application.
"""

from math import radians, cos, sin, asin, sqrt
from typing import Any, Dict

EARTH_RADIUS_METERS = 6371000


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in meters using Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Clamp float noise so antipodal points do not overflow asin's domain
    c = 2 * asin(min(1.0, sqrt(a)))
    return c * EARTH_RADIUS_METERS


def distance_km(origin: Dict[str, Any], destination: Dict[str, Any]) -> float:
    """Haversine distance in kilometers between two location dicts."""
    return calculate_distance(
        origin["latitude"],
        origin["longitude"],
        destination["latitude"],
        destination["longitude"],
    ) / 1000.0
