"""
Core App Views - User Management API
"""

import logging

from rest_framework import viewsets, permissions
from rest_framework.decorators import action
from rest_framework.response import Response
from django.contrib.auth import get_user_model

from .models import UserRole
from .permissions import IsAdminRole
from .serializers import UserSerializer, ProfileUpdateSerializer, RoleUpdateSerializer

User = get_user_model()
logger = logging.getLogger(__name__)


class UserViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for User model.

    - List: Admin only (filter with ?role=)
    - Retrieve: Admin or self
    - me: read / update own profile
    - role: Admin changes a user's role
    """

    serializer_class = UserSerializer
    filterset_fields = ['role', 'is_active']

    def get_permissions(self):
        if self.action in ['list', 'role']:
            return [IsAdminRole()]
        return [permissions.IsAuthenticated()]

    def get_queryset(self):
        user = self.request.user
        if user.role == UserRole.ADMIN:
            return User.objects.all()
        # Non-admin can only see their own profile
        return User.objects.filter(pk=user.pk)

    @action(detail=False, methods=['get', 'patch'])
    def me(self, request):
        """Get or update current user profile."""
        if request.method == 'PATCH':
            serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
            serializer.is_valid(raise_exception=True)
            serializer.save()
        return Response(UserSerializer(request.user).data)

    @action(detail=True, methods=['patch'])
    def role(self, request, pk=None):
        """Change a user's role (Admin only)."""
        target = self.get_object()
        serializer = RoleUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        old_role = target.role
        target.role = serializer.validated_data['role']
        target.save(update_fields=['role'])

        logger.info(
            f"[ROLES] {request.user.email} changed {target.email}: {old_role} -> {target.role}"
        )
        return Response(UserSerializer(target).data)
