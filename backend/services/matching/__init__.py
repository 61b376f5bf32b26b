"""
Driver matching service.

This module handles:
    - Finding approved, available drivers with a compatible vehicle
    - Scheduling matching in the background after a booking commits
"""

from .driver_matcher import DriverCandidate, MatchCriteria, find_candidates, match_drivers
from .dispatch import DriverMatchingQueue

__all__ = [
    "DriverCandidate",
    "DriverMatchingQueue",
    "find_candidates",
    "MatchCriteria",
    "match_drivers",
]
