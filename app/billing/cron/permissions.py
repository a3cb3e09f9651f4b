"""
Permission class for the cron trigger endpoints.

Requests authenticate with the CRON_SECRET setting, sent either as the
x-cron-secret header or as "Authorization: Bearer <secret>". An unset
CRON_SECRET denies every request.
"""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

from django.conf import settings
from rest_framework import permissions

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


def presented_secret(request: Request) -> str:
    secret = request.headers.get("x-cron-secret")
    if secret:
        return secret
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer":
        return token.strip()
    return ""


class HasCronSecret(permissions.BasePermission):
    """Allows access only to callers presenting CRON_SECRET."""

    message = "Unauthorized"

    def has_permission(self, request: Request, view: APIView) -> bool:
        expected = getattr(settings, "CRON_SECRET", "") or ""
        if not expected:
            return False
        presented = presented_secret(request)
        return bool(presented) and hmac.compare_digest(
            presented.encode(), expected.encode()
        )
