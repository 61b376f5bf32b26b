from django.urls import path
from .views import DriverAvailabilityView

urlpatterns = [
    path("<int:driver_id>/availability/", DriverAvailabilityView.as_view(), name="driver-availability"),
]
