from __future__ import annotations

import logging

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)


def client_ip(request) -> str:
    """Best client address from proxy headers; empty when none is known."""

    forwarded = (request.META.get("HTTP_X_FORWARDED_FOR") or "").strip()
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    real_ip = (request.META.get("HTTP_X_REAL_IP") or "").strip()
    if real_ip:
        return real_ip
    return (request.META.get("REMOTE_ADDR") or "").strip()


def hit(*, scope: str, key: str, limit: int | None = None, window: int | None = None) -> bool:
    """Fixed-window counter. Returns False once ``limit`` hits are used up."""

    limit_i = int(limit if limit is not None else getattr(settings, "PINCODE_RATE_LIMIT", 15))
    window_i = int(window if window is not None else getattr(settings, "PINCODE_RATE_WINDOW_SECONDS", 60))

    cache_key = f"ratelimit:v1:{scope}:{key}"
    if cache.add(cache_key, 1, timeout=window_i):
        return True
    try:
        count = cache.incr(cache_key)
    except ValueError:
        # Window expired between add() and incr().
        cache.add(cache_key, 1, timeout=window_i)
        return True

    if count > limit_i:
        logger.warning("Rate limit hit", extra={"scope": scope, "key": key, "count": count})
        return False
    return True
