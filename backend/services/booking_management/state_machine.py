"""Booking status state machine."""

from typing import Dict, FrozenSet

from .exceptions import InvalidStatusTransitionError

PENDING = "pending"
CONFIRMED = "confirmed"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

BOOKING_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({IN_PROGRESS, CANCELLED}),
    IN_PROGRESS: frozenset({COMPLETED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in BOOKING_TRANSITIONS.items() if not targets)

# Statuses in which a booking carries a driver and a vehicle
ASSIGNED_STATES = frozenset({CONFIRMED, IN_PROGRESS, COMPLETED})


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def can_transition(current: str, target: str) -> bool:
    return target in BOOKING_TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(
            f"Invalid booking transition: {current} -> {target}",
            details={"status": [f"Cannot move from {current} to {target}."]},
        )
