"""
Tracking App Views - Courier location API (HTTP fallback to the WebSocket)
"""

import logging

from django.apps import apps
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import DomainError, domain_error_response
from core.permissions import IsAdminRole, IsCourier
from . import services
from .geolocation import PositionSample
from .models import CourierLocation
from .publisher import LocationPublisher
from .serializers import CourierLocationSerializer, LocationSampleSerializer

logger = logging.getLogger(__name__)


class CourierLocationView(APIView):
    """
    API endpoint for courier location updates.

    POST /api/tracking/location/

    Request body:
    {
        "latitude": -33.45,
        "longitude": -70.66,
        "order_id": "<uuid>"      (optional, defaults to the active session's order)
    }
    """

    permission_classes = [IsCourier]

    def post(self, request):
        serializer = LocationSampleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order_id = data.get('order_id')
        if order_id is None:
            session = apps.get_app_config('tracking').registry.get(request.user.pk)
            order_id = session.order_id if session else None

        if order_id is not None:
            # A finished or foreign order gets no write at all
            try:
                services.check_active_order(order_id, request.user.pk)
            except DomainError as e:
                return domain_error_response(e)

        sample = PositionSample(
            latitude=data['latitude'],
            longitude=data['longitude'],
            accuracy=data.get('accuracy'),
        )
        errors = LocationPublisher(request.user.pk, order_id).publish(sample)

        body = {
            'message': 'Ubicación actualizada.',
            'location': {'latitude': sample.latitude, 'longitude': sample.longitude},
            'order_id': str(order_id) if order_id else None,
            'timestamp': sample.timestamp.isoformat(),
            'errors': [
                {'error': getattr(e, 'message', str(e)), 'code': getattr(e, 'code', 'error')}
                for e in errors
            ],
        }
        expected_writes = 2 if order_id else 1
        if len(errors) == expected_writes:
            first = errors[0]
            return Response(
                {'error': body['errors'][0]['error'], 'code': body['errors'][0]['code']},
                status=getattr(first, 'status_code', status.HTTP_503_SERVICE_UNAVAILABLE)
            )
        return Response(body)


class TrackingStopView(APIView):
    """
    POST /api/tracking/stop/

    Courier signs off: stops their session (if any) and marks them idle.
    """

    permission_classes = [IsCourier]

    def post(self, request):
        was_active = apps.get_app_config('tracking').registry.stop(request.user.pk)
        return Response({'message': 'Seguimiento detenido.', 'was_active': was_active})


class CourierPositionsView(generics.ListAPIView):
    """GET /api/tracking/couriers/ - last known courier positions (Admin only)."""

    permission_classes = [IsAdminRole]
    serializer_class = CourierLocationSerializer
    filterset_fields = ['is_moving']

    def get_queryset(self):
        return CourierLocation.objects.select_related('courier').order_by('-updated_at')
