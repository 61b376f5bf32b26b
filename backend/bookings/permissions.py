from rest_framework.permissions import BasePermission


class IsDispatcher(BasePermission):
    """
    Allows access only to staff users, who assign drivers to bookings.
    Keeps role check logic centralized.
    """
    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return bool(user.is_staff)


def can_view_booking(user, booking_data) -> bool:
    """Clients see their own bookings, drivers the ones assigned to them, staff everything."""
    if user.is_staff:
        return True
    if booking_data.get("client_id") == user.pk:
        return True
    driver = booking_data.get("driver") or {}
    return driver.get("user_id") == user.pk
