"""Append-only tracking history for bookings."""

from typing import Any, Dict, Optional

from bookings.models import Booking, TrackingHistory

BOOKING_CREATED = "BOOKING_CREATED"
DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
BOOKING_CANCELLED = "BOOKING_CANCELLED"


def status_changed_label(status: str) -> str:
    return f"STATUS_CHANGED_TO_{status.upper()}"


def record_event(
    booking: Booking,
    label: str,
    notes: str = "",
    location: Optional[Dict[str, Any]] = None,
) -> TrackingHistory:
    """
    Append one tracking entry.

    Call this inside the transaction of the mutation it documents so the entry
    and the change commit or roll back together.
    """
    return TrackingHistory.objects.create(
        booking=booking,
        location=location if location is not None else booking.pickup_location,
        status=label,
        notes=notes,
    )
