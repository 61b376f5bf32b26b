"""
Find candidate drivers for a booking.

Candidates are approved, currently available drivers owning an active vehicle
of the requested class. Ranking is by rating only; geographic proximity is not
considered because driver positions are not tracked.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db.models import Prefetch

from drivers.models import DriverProfile, Vehicle

logger = logging.getLogger(__name__)


@dataclass
class MatchCriteria:
    vehicle_class: str
    origin_location: Dict[str, Any]
    scheduled_at: datetime
    max_distance_km: float = 50.0
    limit: Optional[int] = None

    @classmethod
    def for_booking(cls, booking) -> "MatchCriteria":
        return cls(
            vehicle_class=booking.vehicle_class,
            origin_location=booking.pickup_location,
            scheduled_at=booking.scheduled_date,
            max_distance_km=getattr(settings, 'DRIVER_MATCH_RADIUS_KM', 50),
        )


@dataclass
class DriverCandidate:
    driver_id: int
    user_id: int
    rating: float
    vehicle_ids: List[int] = field(default_factory=list)


def find_candidates(criteria: MatchCriteria) -> List[DriverCandidate]:
    """
    Return up to ``criteria.limit`` candidate drivers.

    Database errors propagate so the background task can retry them.
    """
    limit = criteria.limit or getattr(settings, 'DRIVER_MATCH_LIMIT', 10)
    matching_vehicles = Vehicle.objects.filter(
        vehicle_class=criteria.vehicle_class,
        is_active=True,
    ).order_by('id')

    drivers = (
        DriverProfile.objects
        .filter(
            is_approved=True,
            is_available=True,
            vehicles__vehicle_class=criteria.vehicle_class,
            vehicles__is_active=True,
        )
        .distinct()
        .order_by('-rating', 'id')
        .prefetch_related(Prefetch('vehicles', queryset=matching_vehicles, to_attr='matching_vehicles'))
        [:limit]
    )

    candidates = [
        DriverCandidate(
            driver_id=profile.id,
            user_id=profile.user_id,
            rating=profile.rating,
            vehicle_ids=[v.id for v in profile.matching_vehicles],
        )
        for profile in drivers
    ]

    logger.info(
        "Found %d potential drivers (class=%s, limit=%d)",
        len(candidates), criteria.vehicle_class, limit
    )
    return candidates


def match_drivers(criteria: MatchCriteria) -> List[DriverCandidate]:
    """
    Best-effort :func:`find_candidates` for request-path callers.

    On any error the failure is logged and an empty list returned.
    """
    try:
        return find_candidates(criteria)
    except Exception:
        logger.exception("Driver matching failed for class %s", criteria.vehicle_class)
        return []
