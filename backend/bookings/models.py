from decimal import Decimal

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.db.models import Q
from django.utils import timezone

from drivers.models import VEHICLE_CLASS_CHOICES


class Booking(models.Model):
    """A scheduled point-to-point transfer between two locations"""

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('confirmed', 'Confirmed'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    # Owned by the payments service; stored as-is
    PAYMENT_STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('COMPLETED', 'Completed'),
        ('FAILED', 'Failed'),
        ('REFUNDED', 'Refunded'),
        ('PARTIAL_REFUND', 'Partial Refund'),
    ]

    # Foreign keys
    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='bookings'
    )
    driver = models.ForeignKey(
        'drivers.DriverProfile',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='bookings'
    )
    vehicle = models.ForeignKey(
        'drivers.Vehicle',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='bookings'
    )

    # Locations: {"address", "latitude", "longitude", "jurisdiction"}
    pickup_location = models.JSONField()
    dropoff_location = models.JSONField()

    scheduled_date = models.DateTimeField()
    vehicle_class = models.CharField(max_length=20, choices=VEHICLE_CLASS_CHOICES, default='BUSINESS')

    # Price breakdown, fixed at creation
    distance_km = models.FloatField()
    estimated_duration_minutes = models.PositiveIntegerField()
    base_price = models.DecimalField(max_digits=10, decimal_places=2)
    surcharges = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default='HKD')

    # Status
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='PENDING')

    # Trip details
    passenger_count = models.PositiveIntegerField(default=1)
    luggage = models.TextField(null=True, blank=True)
    special_requests = models.TextField(null=True, blank=True)
    cancellation_reason = models.TextField(null=True, blank=True)

    # Timestamps
    actual_pickup_time = models.DateTimeField(null=True, blank=True)
    actual_dropoff_time = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='booking_status_created_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(driver__isnull=True, vehicle__isnull=True)
                    | Q(
                        driver__isnull=False,
                        vehicle__isnull=False,
                        status__in=['confirmed', 'in_progress', 'completed'],
                    )
                ),
                name='booking_assignment_matches_status',
            ),
        ]

    def __str__(self):
        return f"Booking #{self.id} - {self.client} - {self.status}"

    @property
    def surcharge_total(self) -> Decimal:
        return sum((Decimal(str(item['amount'])) for item in self.surcharges or []), Decimal('0'))


class TrackingHistoryQuerySet(models.QuerySet):
    def for_display(self):
        return self.order_by('-timestamp', '-id')

    def for_replay(self):
        return self.order_by('timestamp', 'id')


class TrackingHistory(models.Model):
    """Immutable audit record of a booking event. Rows are only ever inserted."""

    booking = models.ForeignKey(
        Booking,
        on_delete=models.PROTECT,
        related_name='tracking_history'
    )
    location = models.JSONField()
    status = models.CharField(max_length=64)
    notes = models.TextField(blank=True, default='')
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    objects = TrackingHistoryQuerySet.as_manager()

    class Meta:
        db_table = 'tracking_history'
        ordering = ['-timestamp', '-id']
        verbose_name_plural = 'tracking history'

    def __str__(self):
        return f"{self.booking_id} {self.status} @ {self.timestamp:%Y-%m-%d %H:%M}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Tracking history entries are immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Tracking history entries cannot be deleted")
