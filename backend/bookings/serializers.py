from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework import serializers

from drivers.models import VEHICLE_CLASS_CHOICES
from drivers.serializers import DriverBasicSerializer, VehicleSerializer
from .models import Booking, TrackingHistory

User = get_user_model()


def _max_passengers():
    return getattr(settings, 'BOOKING_MAX_PASSENGERS', 8)


def validate_future(value):
    if value <= timezone.now():
        raise serializers.ValidationError("Scheduled date must be in the future.")
    return value


class LocationSerializer(serializers.Serializer):
    """A point with an address and the jurisdiction used for border detection"""
    address = serializers.CharField(max_length=500)
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    jurisdiction = serializers.CharField(max_length=20)


class PassengerCountField(serializers.IntegerField):
    def __init__(self, **kwargs):
        kwargs.setdefault('min_value', 1)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        if value > _max_passengers():
            raise serializers.ValidationError(
                f"Ensure this value is less than or equal to {_max_passengers()}."
            )
        return value


class BookingCreateSerializer(serializers.Serializer):
    """Serializer for creating bookings"""
    client_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.all(), source='client')
    pickup_location = LocationSerializer()
    dropoff_location = LocationSerializer()
    scheduled_date = serializers.DateTimeField(validators=[validate_future])
    vehicle_class = serializers.ChoiceField(choices=VEHICLE_CLASS_CHOICES, default='BUSINESS')
    passenger_count = PassengerCountField()
    luggage = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    special_requests = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=500)


class BookingUpdateSerializer(serializers.Serializer):
    """Partial booking update. Price is not recomputed on reschedule."""
    scheduled_date = serializers.DateTimeField(required=False, validators=[validate_future])
    passenger_count = PassengerCountField(required=False)
    luggage = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    special_requests = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=500)
    status = serializers.ChoiceField(choices=Booking.STATUS_CHOICES, required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("No updatable fields supplied.")
        return attrs


class AssignDriverSerializer(serializers.Serializer):
    driver_id = serializers.IntegerField(min_value=1)
    vehicle_id = serializers.IntegerField(min_value=1)


class BookingCancelSerializer(serializers.Serializer):
    """Serializer for booking cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True, default='No reason provided')


class PriceEstimateSerializer(serializers.Serializer):
    pickup_location = LocationSerializer()
    dropoff_location = LocationSerializer()
    vehicle_class = serializers.ChoiceField(choices=VEHICLE_CLASS_CHOICES, default='BUSINESS')
    scheduled_date = serializers.DateTimeField()


class PriceRangeSerializer(serializers.Serializer):
    pickup_location = LocationSerializer()
    dropoff_location = LocationSerializer()
    vehicle_class = serializers.ChoiceField(choices=VEHICLE_CLASS_CHOICES, default='BUSINESS')


class TrackingHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = TrackingHistory
        fields = ['id', 'status', 'notes', 'location', 'timestamp']
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    """Serializer for Bookings"""
    client_id = serializers.IntegerField(read_only=True)
    driver_id = serializers.IntegerField(read_only=True, allow_null=True)
    vehicle_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Booking
        fields = ['id', 'client_id', 'driver_id', 'vehicle_id', 'pickup_location', 'dropoff_location',
                  'scheduled_date', 'vehicle_class', 'distance_km', 'estimated_duration_minutes',
                  'base_price', 'surcharges', 'total_price', 'currency', 'status', 'payment_status',
                  'passenger_count', 'luggage', 'special_requests', 'cancellation_reason',
                  'actual_pickup_time', 'actual_dropoff_time', 'created_at', 'updated_at']
        read_only_fields = fields


class BookingDetailSerializer(BookingSerializer):
    """Booking with driver, vehicle and the latest tracking entries"""
    driver = DriverBasicSerializer(read_only=True)
    vehicle = VehicleSerializer(read_only=True)
    tracking_history = serializers.SerializerMethodField()

    class Meta(BookingSerializer.Meta):
        fields = BookingSerializer.Meta.fields + ['driver', 'vehicle', 'tracking_history']
        read_only_fields = fields

    def get_tracking_history(self, obj):
        limit = getattr(settings, 'BOOKING_TRACKING_HISTORY_LIMIT', 10)
        entries = obj.tracking_history.for_display()[:limit]
        return TrackingHistorySerializer(entries, many=True).data
