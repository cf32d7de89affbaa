from rest_framework.permissions import BasePermission, SAFE_METHODS

from .exceptions import Forbidden

ROLE_ADMIN = "admin"
ROLE_USER = "user"


def role_of(user):
    return ROLE_ADMIN if user.is_staff else ROLE_USER


def can_access(booking, user):
    """Owners and admins may read or change a booking."""
    return user.is_staff or booking.user_id == user.pk


def ensure_can_access(booking, user, action="access"):
    if not can_access(booking, user):
        raise Forbidden(f"Not authorized to {action} this booking")


class IsAdmin(BasePermission):
    message = "Admin role required"

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_staff)


class IsAdminOrReadOnly(IsAdmin):
    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        return super().has_permission(request, view)
