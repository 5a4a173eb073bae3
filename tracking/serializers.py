"""
Tracking App Serializers
"""

from rest_framework import serializers

from .models import CourierLocation


class LocationSampleSerializer(serializers.Serializer):
    """One GPS sample posted by a courier (HTTP fallback)."""

    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    accuracy = serializers.FloatField(required=False, allow_null=True, min_value=0)
    order_id = serializers.UUIDField(required=False, allow_null=True)


class CourierLocationSerializer(serializers.ModelSerializer):
    courier_name = serializers.CharField(source='courier.name', read_only=True)
    courier_email = serializers.CharField(source='courier.email', read_only=True)

    class Meta:
        model = CourierLocation
        fields = [
            'courier', 'courier_name', 'courier_email',
            'latitude', 'longitude', 'accuracy',
            'updated_at', 'is_moving', 'current_order',
        ]
        read_only_fields = fields
