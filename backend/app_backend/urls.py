from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Booking lifecycle and pricing (at /api/bookings/)
    path('api/bookings/', include('bookings.urls')),

    # Driver availability (at /api/drivers/)
    path('api/drivers/', include('drivers.urls')),
]
