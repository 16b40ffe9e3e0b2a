from django.conf import settings
from rest_framework import permissions


def client_ip(request):
    """Caller address; X-Forwarded-For is honoured only behind a trusted proxy."""
    if getattr(settings, "USE_X_FORWARDED_FOR", False):
        forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


class IsStaffOrInternalService(permissions.BasePermission):
    """
    Operator endpoints: staff users, or internal services calling from a
    whitelisted address (INTERNAL_SERVICE_IPS), e.g. the ops scheduler.
    """

    message = "Staff access required."

    def has_permission(self, request, view):
        user = request.user
        if user and user.is_authenticated and user.is_staff:
            return True
        return client_ip(request) in getattr(settings, "INTERNAL_SERVICE_IPS", [])
