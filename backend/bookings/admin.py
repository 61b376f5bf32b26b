"""Tells what to show in the Django admin interface for bookings app"""

from django.contrib import admin
from .models import Booking, TrackingHistory


class TrackingHistoryInline(admin.TabularInline):
    """Audit trail is append-only, so the inline is read-only"""
    model = TrackingHistory
    extra = 0
    fields = ['timestamp', 'status', 'notes', 'location']
    readonly_fields = fields
    ordering = ['-timestamp', '-id']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Booking admin"""
    list_display = ['id', 'client', 'driver', 'vehicle_class', 'status', 'scheduled_date', 'total_price', 'currency']
    list_filter = ['status', 'vehicle_class', 'payment_status']
    search_fields = ['client__username', 'driver__user__username', 'special_requests']
    readonly_fields = [
        'distance_km', 'estimated_duration_minutes', 'base_price', 'surcharges',
        'total_price', 'currency', 'actual_pickup_time', 'actual_dropoff_time',
        'created_at', 'updated_at',
    ]
    date_hierarchy = 'scheduled_date'
    inlines = [TrackingHistoryInline]


@admin.register(TrackingHistory)
class TrackingHistoryAdmin(admin.ModelAdmin):
    list_display = ("booking", "status", "timestamp")
    list_filter = ("status",)
    search_fields = ("booking__id", "notes")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
