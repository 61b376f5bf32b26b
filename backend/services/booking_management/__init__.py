"""
Booking management service - Core booking lifecycle operations.

This module handles:
    - Creating and pricing bookings
    - Reading bookings through the cache
    - Updating bookings and moving them through the state machine
    - Assigning drivers
    - Cancelling bookings
"""

from .lifecycle import BookingLifecycleManager
from .results import ServiceResult
from .exceptions import (
    BookingError,
    BookingValidationError,
    BookingNotFoundError,
    BookingNotUpdatableError,
    BookingNotAssignableError,
    DriverNotAvailableError,
    BookingNotCancellableError,
    InvalidStatusTransitionError,
)

__all__ = [
    # Lifecycle
    "BookingLifecycleManager",
    "ServiceResult",
    # Exceptions
    "BookingError",
    "BookingValidationError",
    "BookingNotFoundError",
    "BookingNotUpdatableError",
    "BookingNotAssignableError",
    "DriverNotAvailableError",
    "BookingNotCancellableError",
    "InvalidStatusTransitionError",
]
