"""Custom exceptions for booking management."""

from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for booking errors that map to a stable error code."""
    code = "SERVICE_ERROR"
    default_message = "Booking service error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details


class BookingValidationError(BookingError):
    """Raised when a payload fails validation. ``details`` holds field errors."""
    code = "VALIDATION_ERROR"
    default_message = "Invalid booking data"


class BookingNotFoundError(BookingError):
    """Raised when a booking cannot be found."""
    code = "BOOKING_NOT_FOUND"
    default_message = "Booking not found"


class BookingNotUpdatableError(BookingError):
    """Raised when a completed or cancelled booking is modified."""
    code = "BOOKING_NOT_UPDATABLE"
    default_message = "Cannot update completed or cancelled booking"


class BookingNotAssignableError(BookingError):
    """Raised when a booking is no longer pending."""
    code = "BOOKING_NOT_ASSIGNABLE"
    default_message = "Booking is not available for assignment"


class DriverNotAvailableError(BookingError):
    """Raised when a driver is unknown, unapproved or already busy."""
    code = "DRIVER_NOT_AVAILABLE"
    default_message = "Driver is not available"


class BookingNotCancellableError(BookingError):
    """Raised when a completed or cancelled booking is cancelled."""
    code = "BOOKING_NOT_CANCELLABLE"
    default_message = "Booking cannot be cancelled"


class InvalidStatusTransitionError(BookingError):
    """Raised when a status change is not in the transition table."""
    code = "INVALID_STATUS_TRANSITION"
    default_message = "Invalid booking status transition"
