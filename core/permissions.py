"""
Core App Permissions - role based access for the REST API.
"""

from rest_framework import permissions

from .models import UserRole


class IsAdminRole(permissions.BasePermission):
    """Permission for admin users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == UserRole.ADMIN


class IsCourier(permissions.BasePermission):
    """Permission for courier users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == UserRole.COURIER


class IsCustomer(permissions.BasePermission):
    """Permission for customer users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == UserRole.CUSTOMER
