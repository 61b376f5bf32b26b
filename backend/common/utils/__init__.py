"""Common utility functions."""

from .geo import calculate_distance, distance_km
from .events import log_business_event

__all__ = [
    "calculate_distance",
    "distance_km",
    "log_business_event",
]
