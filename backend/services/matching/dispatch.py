"""
Background dispatch of driver matching.

Matching runs in a Celery worker after the booking transaction commits. The
request that created the booking never waits for it and never sees its
failures.
"""

import logging

from django.db import transaction

logger = logging.getLogger(__name__)


class DriverMatchingQueue:
    """Schedules ``match_drivers_for_booking`` once the current transaction commits."""

    def __init__(self, countdown: int = 0):
        self.countdown = countdown

    def enqueue(self, booking_id: int) -> None:
        try:
            transaction.on_commit(lambda: self._send(booking_id))
        except Exception:
            logger.exception("Failed to schedule driver matching for booking %s", booking_id)

    def _send(self, booking_id: int) -> None:
        from bookings.tasks import match_drivers_for_booking

        try:
            match_drivers_for_booking.apply_async((booking_id,), countdown=self.countdown)
        except Exception:
            logger.exception("Failed to enqueue driver matching for booking %s", booking_id)
