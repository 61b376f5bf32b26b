"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP layer.

Modules:
    - pricing: Distance, duration and price computation
    - cache: Versioned, fail-open cache helpers
    - matching: Driver matching and background dispatch
    - booking_management: Core booking lifecycle operations
"""

from functools import lru_cache


@lru_cache(maxsize=None)
def get_booking_manager():
    """
    Process-wide booking manager, wired once from settings.

    Imported lazily so that apps can import ``services.cache`` and
    ``services.pricing`` while Django is still loading models.
    """
    from django.conf import settings

    from .booking_management import BookingLifecycleManager
    from .cache import VersionedCache
    from .matching import DriverMatchingQueue
    from .pricing import PricingConfig, PricingEngine

    return BookingLifecycleManager(
        pricing=PricingEngine(PricingConfig.from_settings(getattr(settings, 'BOOKING_PRICING', None))),
        cache=VersionedCache(default_ttl=getattr(settings, 'BOOKING_CACHE_TTL', 1800)),
        matching_queue=DriverMatchingQueue(),
    )


__all__ = ["get_booking_manager"]
