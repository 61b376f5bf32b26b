"""Celery tasks for booking-related background processing."""

import logging

from celery import shared_task
from django.conf import settings
from django.db import DatabaseError

from common.utils import log_business_event

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
    max_retries=getattr(settings, 'DRIVER_MATCH_MAX_RETRIES', 3),
)
def match_drivers_for_booking(self, booking_id: int):
    """
    Look up candidate drivers for a pending booking.

    Database errors are retried with exponential backoff. A booking that is
    gone or no longer pending is skipped, which is how a cancellation stops
    queued matching.
    """
    from bookings.models import Booking
    from services.matching import MatchCriteria, find_candidates

    booking = Booking.objects.filter(id=booking_id).only(
        'id', 'status', 'vehicle_class', 'pickup_location', 'scheduled_date'
    ).first()
    if booking is None:
        logger.warning("Booking %s not found for driver matching", booking_id)
        return []
    if booking.status != 'pending':
        logger.info("Skipping driver matching for booking %s (status: %s)", booking_id, booking.status)
        return []

    # DatabaseError escapes to autoretry_for
    candidates = find_candidates(MatchCriteria.for_booking(booking))
    driver_ids = [c.driver_id for c in candidates]

    log_business_event(
        "drivers_matched",
        booking_id=booking_id,
        vehicle_class=booking.vehicle_class,
        candidates=len(driver_ids),
        attempt=self.request.retries,
    )
    return driver_ids
