"""
Booking lifecycle operations.

This module contains the business logic for creating, reading, updating,
assigning and cancelling bookings. Every mutation runs in one database
transaction together with its tracking history entry and any driver
availability change; caches are invalidated after commit.
"""

import logging
from typing import Any, Dict, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from bookings.models import Booking
from bookings.serializers import (
    BookingCreateSerializer,
    BookingDetailSerializer,
    BookingUpdateSerializer,
    PriceEstimateSerializer,
    PriceRangeSerializer,
)
from common.utils import log_business_event
from drivers import services as driver_services
from drivers.models import Vehicle
from services.cache import CacheKeys, VersionedCache
from services.matching import DriverMatchingQueue
from services.pricing import PricingEngine

from . import state_machine, tracking
from .exceptions import (
    BookingError,
    BookingNotAssignableError,
    BookingNotCancellableError,
    BookingNotFoundError,
    BookingNotUpdatableError,
    BookingValidationError,
    DriverNotAvailableError,
)
from .results import ServiceResult

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('scheduled_date', 'passenger_count', 'luggage', 'special_requests')
DEFAULT_CANCELLATION_REASON = "No reason provided"


def _validated(serializer_class, data) -> Dict[str, Any]:
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise BookingValidationError(details=serializer.errors)
    return serializer.validated_data


class BookingLifecycleManager:
    """
    Orchestrates the booking state machine.

    Dependencies are passed in explicitly; ``services.get_booking_manager()``
    builds the process-wide instance from settings.
    """

    def __init__(
        self,
        pricing: Optional[PricingEngine] = None,
        cache: Optional[VersionedCache] = None,
        matching_queue: Optional[DriverMatchingQueue] = None,
    ):
        self.pricing = pricing or PricingEngine()
        self.cache = cache or VersionedCache()
        self.matching_queue = matching_queue or DriverMatchingQueue()

    # ===================== Result handling =====================

    def _run(self, operation: str, func, *args, **kwargs) -> ServiceResult:
        try:
            return func(*args, **kwargs)
        except BookingError as exc:
            logger.info("%s rejected: %s (%s)", operation, exc.code, exc.message)
            return ServiceResult.from_error(exc)
        except DatabaseError:
            logger.exception("%s failed with a database error (args=%r)", operation, args)
            return ServiceResult.fail("SERVICE_ERROR", "Booking service is temporarily unavailable")

    # ===================== Helpers =====================

    def _serialize(self, booking_id: int) -> Dict[str, Any]:
        booking = (
            Booking.objects
            .select_related('driver__user', 'vehicle')
            .filter(id=booking_id)
            .first()
        )
        if booking is None:
            raise BookingNotFoundError()
        return BookingDetailSerializer(booking).data

    @staticmethod
    def _lock(booking_id: int) -> Booking:
        try:
            return Booking.objects.select_for_update().get(id=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFoundError()

    def _invalidate(self, booking_id: int, driver_id: Optional[int] = None) -> None:
        self.cache.invalidate(CacheKeys.BOOKING, booking_id)
        if driver_id is not None:
            self.cache.invalidate(CacheKeys.DRIVER, driver_id)

    @staticmethod
    def _release_assignment(booking: Booking) -> Optional[int]:
        """Detach driver and vehicle from a booking being cancelled; returns the released driver id."""
        driver_id = booking.driver_id
        if driver_id is not None:
            driver_services.release_driver(driver_id)
            booking.driver = None
            booking.vehicle = None
        return driver_id

    # ===================== Create =====================

    def create_booking(self, data: Dict[str, Any]) -> ServiceResult:
        return self._run("create_booking", self._create_booking, data)

    def _create_booking(self, data):
        validated = _validated(BookingCreateSerializer, data)
        pickup = dict(validated['pickup_location'])
        dropoff = dict(validated['dropoff_location'])

        breakdown = self.pricing.quote(
            pickup, dropoff, validated['vehicle_class'], validated['scheduled_date']
        )

        with transaction.atomic():
            booking = Booking.objects.create(
                client=validated['client'],
                pickup_location=pickup,
                dropoff_location=dropoff,
                scheduled_date=validated['scheduled_date'],
                vehicle_class=validated['vehicle_class'],
                distance_km=breakdown.distance_km,
                estimated_duration_minutes=breakdown.estimated_duration_minutes,
                base_price=breakdown.base_price,
                surcharges=[s.as_dict() for s in breakdown.surcharges],
                total_price=breakdown.total_price,
                currency=breakdown.currency,
                status=state_machine.PENDING,
                passenger_count=validated['passenger_count'],
                luggage=validated.get('luggage'),
                special_requests=validated.get('special_requests'),
            )
            tracking.record_event(
                booking,
                tracking.BOOKING_CREATED,
                "Booking created and pending driver assignment",
                location=pickup,
            )
            # Runs after commit; a failure here never touches the booking
            self.matching_queue.enqueue(booking.id)

        token = self.cache.token(CacheKeys.BOOKING, booking.id)
        data = self._serialize(booking.id)
        if token is not None:
            self.cache.set(CacheKeys.BOOKING, booking.id, data, token=token)

        log_business_event(
            "booking_created",
            booking_id=booking.id,
            client_id=booking.client_id,
            total_price=str(breakdown.total_price),
            distance_km=breakdown.distance_km,
        )
        return ServiceResult.ok(data)

    # ===================== Read =====================

    def get_booking_by_id(self, booking_id: int) -> ServiceResult:
        return self._run("get_booking_by_id", self._get_booking_by_id, booking_id)

    def _get_booking_by_id(self, booking_id):
        cached = self.cache.get(CacheKeys.BOOKING, booking_id)
        if cached is not None:
            return ServiceResult.ok(cached, cached=True)

        # Token is taken before the read so a concurrent invalidation orphans this value
        token = self.cache.token(CacheKeys.BOOKING, booking_id)
        data = self._serialize(booking_id)
        if token is not None:
            self.cache.set(CacheKeys.BOOKING, booking_id, data, token=token)
        return ServiceResult.ok(data)

    # ===================== Update =====================

    def update_booking(self, booking_id: int, patch: Dict[str, Any], actor: Any = None) -> ServiceResult:
        return self._run("update_booking", self._update_booking, booking_id, patch, actor)

    def _update_booking(self, booking_id, patch, actor):
        released_driver_id = None

        with transaction.atomic():
            booking = self._lock(booking_id)
            if state_machine.is_terminal(booking.status):
                raise BookingNotUpdatableError()

            validated = _validated(BookingUpdateSerializer, patch)
            for name in UPDATABLE_FIELDS:
                if name in validated:
                    setattr(booking, name, validated[name])

            previous = booking.status
            target = validated.get('status', previous)
            if target != previous:
                state_machine.assert_transition(previous, target)
                now = timezone.now()
                if target == state_machine.IN_PROGRESS:
                    booking.actual_pickup_time = now
                elif target == state_machine.COMPLETED:
                    booking.actual_dropoff_time = now
                    released_driver_id = booking.driver_id
                    driver_services.release_driver(released_driver_id)
                elif target == state_machine.CANCELLED:
                    released_driver_id = self._release_assignment(booking)
                    booking.cancellation_reason = booking.cancellation_reason or DEFAULT_CANCELLATION_REASON
                booking.status = target

            booking.save()

            if target != previous:
                tracking.record_event(
                    booking,
                    tracking.status_changed_label(target),
                    f"Booking status changed from {previous} to {target}",
                )

        self._invalidate(booking.id, released_driver_id)

        if target != previous:
            log_business_event(
                "booking_status_changed",
                booking_id=booking.id,
                from_status=previous,
                to_status=target,
                actor=actor,
            )
        return ServiceResult.ok(self._serialize(booking.id))

    # ===================== Assign =====================

    def assign_driver(self, booking_id: int, driver_id: int, vehicle_id: int) -> ServiceResult:
        return self._run("assign_driver", self._assign_driver, booking_id, driver_id, vehicle_id)

    def _assign_driver(self, booking_id, driver_id, vehicle_id):
        with transaction.atomic():
            booking = self._lock(booking_id)
            if booking.status != state_machine.PENDING:
                raise BookingNotAssignableError()

            # Checked and flipped in one statement: exactly one concurrent
            # assignment of the same driver can succeed. Unknown and
            # unapproved drivers fail here too.
            if not driver_services.claim_driver(driver_id):
                raise DriverNotAvailableError()

            # A failure below rolls the claim back with the transaction
            vehicle = Vehicle.objects.filter(
                id=vehicle_id,
                driver_id=driver_id,
                vehicle_class=booking.vehicle_class,
                is_active=True,
            ).first()
            if vehicle is None:
                message = f"Vehicle is not an active {booking.vehicle_class} vehicle of this driver"
                raise BookingValidationError(message, details={"vehicle_id": [f"{message}."]})

            # Same compare-and-set on the booking row, for backends without row locks
            claimed = Booking.objects.filter(id=booking.id, status=state_machine.PENDING).update(
                driver_id=driver_id,
                vehicle_id=vehicle.id,
                status=state_machine.CONFIRMED,
                updated_at=timezone.now(),
            )
            if not claimed:
                raise BookingNotAssignableError()
            booking.refresh_from_db()

            tracking.record_event(
                booking,
                tracking.DRIVER_ASSIGNED,
                f"Driver {driver_id} assigned with vehicle {vehicle.plate_number}",
            )

        self._invalidate(booking.id, driver_id)

        log_business_event(
            "driver_assigned",
            booking_id=booking.id,
            driver_id=driver_id,
            vehicle_id=vehicle.id,
        )
        return ServiceResult.ok(self._serialize(booking.id))

    # ===================== Cancel =====================

    def cancel_booking(self, booking_id: int, reason: str = DEFAULT_CANCELLATION_REASON, actor: Any = None) -> ServiceResult:
        return self._run("cancel_booking", self._cancel_booking, booking_id, reason, actor)

    def _cancel_booking(self, booking_id, reason, actor):
        with transaction.atomic():
            booking = self._lock(booking_id)
            if not state_machine.can_transition(booking.status, state_machine.CANCELLED):
                raise BookingNotCancellableError()

            released_driver_id = self._release_assignment(booking)
            booking.status = state_machine.CANCELLED
            booking.cancellation_reason = reason
            booking.save()

            tracking.record_event(
                booking,
                tracking.BOOKING_CANCELLED,
                f"Booking cancelled: {reason}",
            )

        self._invalidate(booking.id, released_driver_id)

        log_business_event(
            "booking_cancelled",
            booking_id=booking.id,
            reason=reason,
            actor=actor,
            was_assigned=released_driver_id is not None,
        )
        return ServiceResult.ok(self._serialize(booking.id))

    # ===================== Pricing =====================

    def calculate_price_estimate(
        self,
        pickup: Dict[str, Any],
        dropoff: Dict[str, Any],
        vehicle_class: str,
        scheduled_at,
    ) -> ServiceResult:
        return self._run(
            "calculate_price_estimate", self._calculate_price_estimate,
            pickup, dropoff, vehicle_class, scheduled_at,
        )

    def _calculate_price_estimate(self, pickup, dropoff, vehicle_class, scheduled_at):
        validated = _validated(PriceEstimateSerializer, {
            'pickup_location': pickup,
            'dropoff_location': dropoff,
            'vehicle_class': vehicle_class,
            'scheduled_date': scheduled_at,
        })
        breakdown = self.pricing.quote(
            dict(validated['pickup_location']),
            dict(validated['dropoff_location']),
            validated['vehicle_class'],
            validated['scheduled_date'],
        )
        return ServiceResult.ok(breakdown.as_dict())

    def estimate_price_range(self, pickup: Dict[str, Any], dropoff: Dict[str, Any], vehicle_class: str) -> ServiceResult:
        return self._run("estimate_price_range", self._estimate_price_range, pickup, dropoff, vehicle_class)

    def _estimate_price_range(self, pickup, dropoff, vehicle_class):
        validated = _validated(PriceRangeSerializer, {
            'pickup_location': pickup,
            'dropoff_location': dropoff,
            'vehicle_class': vehicle_class,
        })
        return ServiceResult.ok(self.pricing.estimate_range(
            dict(validated['pickup_location']),
            dict(validated['dropoff_location']),
            validated['vehicle_class'],
        ))
