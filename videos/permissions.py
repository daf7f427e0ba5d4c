import hmac

from django.conf import settings
from rest_framework.permissions import BasePermission

JOB_TOKEN_HEADER = "X-Job-Token"


class HasJobToken(BasePermission):
    """Worker-to-API calls carry the pre-shared API_JOB_STATUS_TOKEN."""

    message = "Missing or invalid job token"

    def has_permission(self, request, view):
        expected = settings.API_JOB_STATUS_TOKEN
        got = request.headers.get(JOB_TOKEN_HEADER) or ""
        if not expected or not got:
            return False
        return hmac.compare_digest(got.encode("utf-8"), expected.encode("utf-8"))
