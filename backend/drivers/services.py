"""
Driver availability operations used by the booking lifecycle.

Bookings never create or delete drivers; they only claim and release them.
Both operations are conditional UPDATEs so the availability check and the
write happen in one statement, which is what makes concurrent assignments of
the same driver safe.
"""

import logging
from typing import Any, Dict, Optional

from django.utils import timezone

from drivers.models import DriverProfile
from services.cache import CacheKeys, CacheTTL, VersionedCache

logger = logging.getLogger(__name__)


def claim_driver(driver_id: int) -> bool:
    """
    Mark an approved, available driver as unavailable.

    Returns False when the driver does not exist, is not approved or was
    already claimed. Must run inside the caller's transaction.
    """
    updated = DriverProfile.objects.filter(
        pk=driver_id,
        is_approved=True,
        is_available=True,
    ).update(is_available=False, updated_at=timezone.now())
    return updated == 1


def release_driver(driver_id: Optional[int]) -> bool:
    """Make a driver available again. Returns False when nothing changed."""
    if driver_id is None:
        return False
    updated = DriverProfile.objects.filter(
        pk=driver_id,
        is_available=False,
    ).update(is_available=True, updated_at=timezone.now())
    if not updated:
        logger.warning("Driver %s was already available on release", driver_id)
    return updated == 1


def _load_availability(driver_id: int) -> Optional[Dict[str, Any]]:
    profile = (
        DriverProfile.objects
        .filter(pk=driver_id)
        .prefetch_related("vehicles")
        .first()
    )
    if profile is None:
        return None
    return {
        "driver_id": profile.id,
        "is_available": profile.is_available,
        "is_approved": profile.is_approved,
        "vehicle_classes": sorted({
            v.vehicle_class for v in profile.vehicles.all() if v.is_active
        }),
    }


def get_driver_availability(driver_id: int, cache: Optional[VersionedCache] = None) -> Optional[Dict[str, Any]]:
    """Read-through cached availability snapshot for one driver."""
    cache = cache or VersionedCache(default_ttl=CacheTTL.SHORT)
    return cache.get_or_set(
        CacheKeys.DRIVER,
        driver_id,
        lambda: _load_availability(driver_id),
        suffix="availability",
    )
