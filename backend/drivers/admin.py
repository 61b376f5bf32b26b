from django.contrib import admin
from drivers.models import DriverProfile, Vehicle


class VehicleInline(admin.TabularInline):
    model = Vehicle
    extra = 0
    fields = ["plate_number", "make", "model", "vehicle_class", "capacity", "is_active"]


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Admin panel for managing Driver Profiles"""

    list_display = [
        "user",
        "license_number",
        "is_approved",
        "is_available",
        "rating",
        "total_trips",
    ]

    list_filter = [
        "is_approved",
        "is_available",
    ]

    search_fields = [
        "user__username",
        "license_number",
    ]

    readonly_fields = [
        "created_at",
        "updated_at",
    ]

    inlines = [VehicleInline]
    ordering = ("user__username",)


@admin.register(Vehicle)
class VehicleAdmin(admin.ModelAdmin):
    list_display = ("plate_number", "driver", "vehicle_class", "capacity", "is_active")
    list_filter = ("vehicle_class", "is_active")
    search_fields = ("plate_number", "driver__user__username")
