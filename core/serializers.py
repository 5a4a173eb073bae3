"""
Core App Serializers - User Management
"""

from rest_framework import serializers
from django.contrib.auth import get_user_model

from .models import UserRole
from .rut import format_tax_id, is_valid_tax_id

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model (read operations)."""

    class Meta:
        model = User
        fields = [
            'id', 'email', 'name', 'photo_url', 'role',
            'phone', 'address', 'tax_id', 'is_active', 'date_joined'
        ]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Fields a user may change on their own profile."""

    class Meta:
        model = User
        fields = ['name', 'photo_url', 'phone', 'address', 'tax_id']

    def validate_tax_id(self, value):
        if not value:
            return ''
        formatted = format_tax_id(value)
        if not is_valid_tax_id(formatted):
            raise serializers.ValidationError('RUT inválido (dígito verificador incorrecto).')
        return formatted


class RoleUpdateSerializer(serializers.Serializer):
    """Admin-only role change."""

    role = serializers.ChoiceField(choices=UserRole.choices)
