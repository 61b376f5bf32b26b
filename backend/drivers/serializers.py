from rest_framework import serializers
from drivers.models import DriverProfile, Vehicle


class VehicleSerializer(serializers.ModelSerializer):
    """Vehicle summary shown on a booking"""

    class Meta:
        model = Vehicle
        fields = [
            "id",
            "make",
            "model",
            "color",
            "plate_number",
            "vehicle_class",
            "capacity",
        ]
        read_only_fields = fields


class DriverBasicSerializer(serializers.ModelSerializer):
    """
    Lite version of driver info for booking details
    (sent to clients once a driver is assigned).
    """
    user_id = serializers.IntegerField(read_only=True)
    name = serializers.SerializerMethodField()
    phone_number = serializers.SerializerMethodField()

    class Meta:
        model = DriverProfile
        fields = [
            "id",
            "user_id",
            "name",
            "phone_number",
            "rating",
        ]
        read_only_fields = fields

    def get_name(self, obj):
        user = obj.user
        full_name = user.get_full_name() if hasattr(user, "get_full_name") else ""
        return full_name or user.get_username()

    def get_phone_number(self, obj):
        return getattr(obj.user, "phone_number", None)


class DriverAvailabilitySerializer(serializers.Serializer):
    driver_id = serializers.IntegerField()
    is_available = serializers.BooleanField()
    is_approved = serializers.BooleanField()
    vehicle_classes = serializers.ListField(child=serializers.CharField())
