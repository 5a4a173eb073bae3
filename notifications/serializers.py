from rest_framework import serializers

from .models import DevicePlatform, DeviceToken


class DeviceTokenSerializer(serializers.ModelSerializer):
    token = serializers.CharField(max_length=512)
    platform = serializers.ChoiceField(choices=DevicePlatform.choices, default=DevicePlatform.WEB)

    class Meta:
        model = DeviceToken
        fields = ['id', 'token', 'platform', 'is_active', 'created_at', 'last_seen_at']
        read_only_fields = ['id', 'is_active', 'created_at', 'last_seen_at']


class DeviceUnregisterSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=512)
