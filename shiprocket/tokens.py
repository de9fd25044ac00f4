from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from django.conf import settings
from django.core.cache import cache


@dataclass(frozen=True)
class CachedToken:
    token: str
    expires_at: float  # epoch seconds

    def is_valid(self, *, now: float | None = None) -> bool:
        return bool(self.token) and (now if now is not None else time.time()) < self.expires_at


class TokenCache:
    """Get-or-refresh cache for a provider token.

    ``fetch`` is called at most once per expiry per cache instance; concurrent
    callers wait for the in-flight refresh instead of authenticating again.
    """

    def __init__(self, *, ttl_seconds: int, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = int(ttl_seconds)
        self.clock = clock
        self._lock = threading.Lock()

    def _load(self) -> CachedToken | None:
        raise NotImplementedError

    def _store(self, cached: CachedToken) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def get_or_refresh(self, fetch: Callable[[], str]) -> str:
        cached = self._load()
        if cached is not None and cached.is_valid(now=self.clock()):
            return cached.token

        with self._lock:
            # Another thread may have refreshed while we waited.
            cached = self._load()
            if cached is not None and cached.is_valid(now=self.clock()):
                return cached.token

            token = fetch()
            self._store(CachedToken(token=token, expires_at=self.clock() + self.ttl_seconds))
            return token


class ProcessTokenCache(TokenCache):
    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._cached: CachedToken | None = None

    def _load(self) -> CachedToken | None:
        return self._cached

    def _store(self, cached: CachedToken) -> None:
        self._cached = cached

    def clear(self) -> None:
        self._cached = None


class DjangoCacheTokenCache(TokenCache):
    """Shares one token across processes through the configured Django cache."""

    def __init__(self, *, key: str = "shiprocket:token:v1", **kwargs) -> None:
        super().__init__(**kwargs)
        self.key = key

    def _load(self) -> CachedToken | None:
        raw = cache.get(self.key)
        if not isinstance(raw, dict):
            return None
        return CachedToken(token=str(raw.get("token") or ""), expires_at=float(raw.get("expires_at") or 0))

    def _store(self, cached: CachedToken) -> None:
        timeout = max(1, int(cached.expires_at - self.clock()))
        cache.set(self.key, {"token": cached.token, "expires_at": cached.expires_at}, timeout=timeout)

    def clear(self) -> None:
        cache.delete(self.key)


_default_cache: TokenCache | None = None
_default_lock = threading.Lock()


def build_token_cache() -> TokenCache:
    ttl = int(getattr(settings, "SHIPROCKET_TOKEN_TTL_HOURS", 23)) * 3600
    mode = str(getattr(settings, "SHIPROCKET_TOKEN_CACHE", "process") or "process").strip().lower()
    if mode == "django":
        return DjangoCacheTokenCache(ttl_seconds=ttl)
    return ProcessTokenCache(ttl_seconds=ttl)


def get_token_cache() -> TokenCache:
    global _default_cache
    if _default_cache is None:
        with _default_lock:
            if _default_cache is None:
                _default_cache = build_token_cache()
    return _default_cache


def reset_token_cache() -> None:
    global _default_cache
    with _default_lock:
        _default_cache = None
