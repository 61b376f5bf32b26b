from django.db import models
from django.conf import settings

User = settings.AUTH_USER_MODEL

VEHICLE_CLASS_CHOICES = [
    ('BUSINESS', 'Business'),
    ('EXECUTIVE', 'Executive'),
    ('LUXURY', 'Luxury'),
    ('SUV', 'SUV'),
    ('VAN', 'Van'),
]


class DriverProfile(models.Model):
    """Driver approval and availability. Records are owned by onboarding; bookings only flip is_available."""

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_profile')

    license_number = models.CharField(max_length=50)
    is_approved = models.BooleanField(default=False)
    is_available = models.BooleanField(default=True)
    rating = models.FloatField(default=0.0)
    total_trips = models.IntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'driver_profiles'

    def __str__(self):
        return f"{self.user} - {self.license_number}"


class Vehicle(models.Model):
    """A vehicle registered by a driver"""

    driver = models.ForeignKey(DriverProfile, on_delete=models.CASCADE, related_name='vehicles')

    make = models.CharField(max_length=50)
    model = models.CharField(max_length=50)
    year = models.PositiveIntegerField()
    color = models.CharField(max_length=30)
    plate_number = models.CharField(max_length=20, unique=True)
    vehicle_class = models.CharField(max_length=20, choices=VEHICLE_CLASS_CHOICES)
    capacity = models.PositiveIntegerField(default=4)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'vehicles'

    def __str__(self):
        return f"{self.plate_number} ({self.vehicle_class})"
