from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from django.conf import settings

ACCESS = "access"


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def issue_access_token(*, user_id: int, ttl_minutes: int | None = None) -> str:
    minutes = int(ttl_minutes if ttl_minutes is not None else getattr(settings, "JWT_ACCESS_TTL_MINUTES", 60))
    now = _now()
    payload = {
        "sub": str(user_id),
        "type": ACCESS,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def access_token_user_id(token: str) -> int | None:
    """User id from a valid access token, else None (bad signature, expired, wrong type)."""

    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError:
        return None

    if payload.get("type") != ACCESS:
        return None
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        return None
