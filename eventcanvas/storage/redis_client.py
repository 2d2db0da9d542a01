"""Redis client factory and health checks."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional, Tuple

from redis import Redis

from eventcanvas.core.config import get_settings


@lru_cache(maxsize=1)
def get_client() -> Redis:
    settings = get_settings()
    return Redis.from_url(settings.redis_url, decode_responses=True)


def test_connection() -> Tuple[bool, Optional[str]]:
    settings = get_settings()
    if settings.provider_health_cache_backend.strip().lower() != "redis":
        return True, None
    try:
        get_client().ping()
        return True, None
    except Exception as exc:  # pragma: no cover
        return False, str(exc)


def reset_client_cache() -> None:
    get_client.cache_clear()
