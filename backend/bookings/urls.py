from django.urls import path
from . import views

app_name = 'bookings'

urlpatterns = [
    # Client APIs
    path('', views.create_booking, name='create-booking'),
    path('<int:booking_id>/', views.booking_detail, name='booking-detail'),
    path('<int:booking_id>/cancel/', views.cancel_booking, name='cancel-booking'),

    # Dispatcher APIs
    path('<int:booking_id>/assign/', views.assign_driver, name='assign-driver'),

    # Pricing
    path('estimate/', views.price_estimate, name='price-estimate'),
    path('estimate-range/', views.price_range, name='price-range'),
]
