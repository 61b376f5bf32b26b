from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from services import get_booking_manager
from .permissions import IsDispatcher, can_view_booking
from .serializers import AssignDriverSerializer, BookingCancelSerializer

ERROR_STATUS = {
    'VALIDATION_ERROR': status.HTTP_400_BAD_REQUEST,
    'BOOKING_NOT_FOUND': status.HTTP_404_NOT_FOUND,
    'BOOKING_NOT_UPDATABLE': status.HTTP_409_CONFLICT,
    'BOOKING_NOT_ASSIGNABLE': status.HTTP_409_CONFLICT,
    'BOOKING_NOT_CANCELLABLE': status.HTTP_409_CONFLICT,
    'DRIVER_NOT_AVAILABLE': status.HTTP_409_CONFLICT,
    'INVALID_STATUS_TRANSITION': status.HTTP_409_CONFLICT,
    'SERVICE_ERROR': status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _respond(result, success_status=status.HTTP_200_OK):
    if result.success:
        return Response(result.to_dict(), status=success_status)
    return Response(
        result.to_dict(),
        status=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST)
    )


def _validation_error(errors):
    return Response(
        {
            'success': False,
            'error': {'code': 'VALIDATION_ERROR', 'message': 'Invalid request data', 'details': errors},
        },
        status=status.HTTP_400_BAD_REQUEST
    )


def _forbidden():
    return Response(
        {'success': False, 'error': {'code': 'FORBIDDEN', 'message': 'You cannot access this booking'}},
        status=status.HTTP_403_FORBIDDEN
    )


def _visible_booking(request, booking_id):
    """Fetch a booking through the manager and check the caller may see it."""
    result = get_booking_manager().get_booking_by_id(booking_id)
    if not result.success:
        return None, _respond(result)
    if not can_view_booking(request.user, result.data):
        return None, _forbidden()
    return result, None


# ==================== Client Booking APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_booking(request):
    """Create a booking for the requesting client"""
    payload = request.data.copy()
    payload['client_id'] = request.user.pk

    result = get_booking_manager().create_booking(payload)
    return _respond(result, success_status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def booking_detail(request, booking_id):
    """
    GET: booking with driver, vehicle and recent tracking history.
    PATCH: reschedule, edit trip details or move the booking to its next status.
    """
    result, denied = _visible_booking(request, booking_id)
    if denied:
        return denied

    if request.method == 'GET':
        return _respond(result)

    result = get_booking_manager().update_booking(booking_id, request.data, actor=request.user.pk)
    return _respond(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_booking(request, booking_id):
    """Cancel a booking. An assigned driver becomes available again."""
    _, denied = _visible_booking(request, booking_id)
    if denied:
        return denied

    serializer = BookingCancelSerializer(data=request.data)
    if not serializer.is_valid():
        return _validation_error(serializer.errors)

    result = get_booking_manager().cancel_booking(
        booking_id,
        serializer.validated_data['reason'] or 'No reason provided',
        actor=request.user.pk,
    )
    return _respond(result)


# ==================== Dispatcher APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDispatcher])
def assign_driver(request, booking_id):
    """Assign a driver and one of their vehicles to a pending booking"""
    serializer = AssignDriverSerializer(data=request.data)
    if not serializer.is_valid():
        return _validation_error(serializer.errors)

    result = get_booking_manager().assign_driver(
        booking_id,
        serializer.validated_data['driver_id'],
        serializer.validated_data['vehicle_id'],
    )
    return _respond(result)


# ==================== Pricing APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def price_estimate(request):
    """Full price breakdown for a trip without creating a booking"""
    result = get_booking_manager().calculate_price_estimate(
        request.data.get('pickup_location'),
        request.data.get('dropoff_location'),
        request.data.get('vehicle_class', 'BUSINESS'),
        request.data.get('scheduled_date'),
    )
    return _respond(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def price_range(request):
    """Min/max price envelope shown before the trip time is chosen"""
    result = get_booking_manager().estimate_price_range(
        request.data.get('pickup_location'),
        request.data.get('dropoff_location'),
        request.data.get('vehicle_class', 'BUSINESS'),
    )
    return _respond(result)
