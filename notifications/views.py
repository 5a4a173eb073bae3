"""
Notifications App Views - device registration
"""

import logging

from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import DeviceToken
from .serializers import DeviceTokenSerializer, DeviceUnregisterSerializer

logger = logging.getLogger(__name__)


class DeviceTokenView(APIView):
    """
    POST   /api/notifications/devices/  {"token": "...", "platform": "WEB"}
    DELETE /api/notifications/devices/  {"token": "..."}

    Registering is an upsert: a token moves to the latest user that sends it.
    """

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = DeviceTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        device, created = DeviceToken.objects.update_or_create(
            token=serializer.validated_data['token'],
            defaults={
                'user': request.user,
                'platform': serializer.validated_data['platform'],
                'is_active': True,
            },
        )
        logger.info(f"[PUSH] Device {'registered' if created else 'refreshed'} for {request.user.email}")
        return Response(
            DeviceTokenSerializer(device).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )

    def delete(self, request):
        serializer = DeviceUnregisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        deleted, _ = DeviceToken.objects.filter(
            user=request.user, token=serializer.validated_data['token']
        ).delete()
        if not deleted:
            return Response(
                {'error': 'Dispositivo no encontrado', 'code': 'not_found'},
                status=status.HTTP_404_NOT_FOUND
            )
        return Response(status=status.HTTP_204_NO_CONTENT)
