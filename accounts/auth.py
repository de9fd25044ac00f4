from __future__ import annotations

from django.conf import settings
from django.contrib.auth import get_user_model
from ninja.security import HttpBearer

from .jwt_utils import access_token_user_id

User = get_user_model()


class JWTAuth(HttpBearer):
    """Storefront session: ``access_token`` cookie, or ``Authorization: Bearer``."""

    def __call__(self, request):
        cookie_name = getattr(settings, "AUTH_COOKIE_ACCESS_NAME", "access_token")
        token = (request.COOKIES.get(cookie_name) or "").strip()
        if token:
            return self.authenticate(request, token)
        return super().__call__(request)

    def authenticate(self, request, token: str):
        user_id = access_token_user_id(token)
        if user_id is None:
            return None
        return User.objects.filter(id=user_id, is_active=True).first()


class StaffJWTAuth(JWTAuth):
    """Operations endpoints: order status changes and label generation."""

    def authenticate(self, request, token: str):
        user = super().authenticate(request, token)
        if user is None or not user.is_staff:
            return None
        return user
