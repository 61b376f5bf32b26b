from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from drivers import services
from drivers.serializers import DriverAvailabilitySerializer


class DriverAvailabilityView(APIView):
    """
    GET: current availability of one driver and the vehicle classes they can serve.
    Served from the cache; assignment and cancellation invalidate it.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, driver_id: int):
        snapshot = services.get_driver_availability(driver_id)
        if snapshot is None:
            return Response(
                {"success": False, "error": {"code": "DRIVER_NOT_FOUND", "message": "Driver not found"}},
                status=404
            )

        serializer = DriverAvailabilitySerializer(snapshot)
        return Response({"success": True, "data": serializer.data})
