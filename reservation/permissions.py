from django.conf import settings
from django.utils.crypto import constant_time_compare
from rest_framework import permissions


class IsStaffMember(permissions.BasePermission):
    """Admins, managers and front-desk staff."""

    def has_permission(self, request, view):
        user = request.user
        if not user.is_authenticated:
            return False

        return getattr(user, 'is_staff_member', False)


class IsStaffOrReadOnly(permissions.BasePermission):
    """
    - Any authenticated user can READ
    - Only staff can WRITE
    """

    def has_permission(self, request, view):
        user = request.user
        if not user.is_authenticated:
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return getattr(user, 'is_staff_member', False)


class IsStaffOrOwner(permissions.BasePermission):
    """Staff see every booking, tenants only their own and only to read."""

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated)

    def has_object_permission(self, request, view, obj):
        user = request.user
        if getattr(user, 'is_staff_member', False):
            return True
        return request.method in permissions.SAFE_METHODS and obj.user_id == user.pk


class HasCronToken(permissions.BasePermission):
    """Bearer token shared with the external cron runner."""

    def has_permission(self, request, view):
        expected = settings.CRON_SECRET_TOKEN
        if not expected:
            return False
        header = request.headers.get('Authorization', '')
        return constant_time_compare(header, f"Bearer {expected}")
