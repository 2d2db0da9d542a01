"""Provider health status and the caches that hold it."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
import json
from threading import Lock
from typing import Any, Dict, Optional, Protocol

from eventcanvas.core.config import Settings
from eventcanvas.core.logger import get_logger
from eventcanvas.storage.redis_client import get_client


logger = get_logger("eventcanvas.health")

REDIS_KEY_PREFIX = "eventcanvas:provider_health:"
# Entries outlive their freshness window so failure streaks survive a refresh.
RETENTION_MULTIPLIER = 10


@dataclass(frozen=True)
class HealthStatus:
    provider: str
    available: bool
    healthy: bool
    checked_at: datetime
    last_error: Optional[str] = None
    consecutive_failures: int = 0

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["checked_at"] = self.checked_at.isoformat()
        return payload

    def to_json(self) -> str:
        return json.dumps(self.as_dict(), separators=(",", ":"), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "HealthStatus":
        data = json.loads(raw)
        checked_at = datetime.fromisoformat(str(data["checked_at"]))
        if checked_at.tzinfo is None:
            checked_at = checked_at.replace(tzinfo=timezone.utc)
        return cls(
            provider=str(data["provider"]),
            available=bool(data["available"]),
            healthy=bool(data["healthy"]),
            checked_at=checked_at,
            last_error=data.get("last_error"),
            consecutive_failures=int(data.get("consecutive_failures") or 0),
        )


class HealthCache(Protocol):
    def get(self, provider_id: str) -> Optional[HealthStatus]:
        """Return the last stored status, fresh or not."""

    def set(self, status: HealthStatus) -> None:
        """Store the latest probe result."""

    def update_last_error(self, provider_id: str, last_error: str) -> None:
        """Replace ``last_error`` on an existing entry and nothing else."""

    def clear(self) -> None:
        """Drop every entry."""


class InMemoryHealthCache:
    def __init__(self) -> None:
        self._lock = Lock()
        self._store: Dict[str, HealthStatus] = {}

    def get(self, provider_id: str) -> Optional[HealthStatus]:
        with self._lock:
            return self._store.get(provider_id)

    def set(self, status: HealthStatus) -> None:
        with self._lock:
            self._store[status.provider] = status

    def update_last_error(self, provider_id: str, last_error: str) -> None:
        with self._lock:
            current = self._store.get(provider_id)
            if current is not None:
                self._store[provider_id] = replace(current, last_error=last_error)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class RedisHealthCache:
    """Shares probe results across instances; in-flight probes stay per process."""

    def __init__(self, *, ttl_seconds: int, redis_client: Any = None) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._retention_seconds = ttl_seconds * RETENTION_MULTIPLIER
        self._redis = redis_client if redis_client is not None else get_client()

    @staticmethod
    def _key(provider_id: str) -> str:
        return f"{REDIS_KEY_PREFIX}{provider_id}"

    def get(self, provider_id: str) -> Optional[HealthStatus]:
        try:
            raw = self._redis.get(self._key(provider_id))
        except Exception as exc:
            logger.warning("provider_health_cache_read_failed", provider=provider_id, error=str(exc))
            return None
        if not raw:
            return None
        try:
            return HealthStatus.from_json(raw)
        except (ValueError, KeyError, TypeError):
            logger.warning("provider_health_cache_entry_invalid", provider=provider_id)
            return None

    def set(self, status: HealthStatus) -> None:
        try:
            self._redis.set(self._key(status.provider), status.to_json(), ex=self._retention_seconds)
        except Exception as exc:
            logger.warning("provider_health_cache_write_failed", provider=status.provider, error=str(exc))

    def update_last_error(self, provider_id: str, last_error: str) -> None:
        current = self.get(provider_id)
        if current is None:
            return
        self.set(replace(current, last_error=last_error))

    def clear(self) -> None:
        try:
            keys = self._redis.keys(f"{REDIS_KEY_PREFIX}*")
            for key in keys:
                self._redis.delete(key)
        except Exception as exc:
            logger.warning("provider_health_cache_clear_failed", error=str(exc))


def build_health_cache(settings: Settings) -> HealthCache:
    backend = settings.provider_health_cache_backend.strip().lower()
    if backend == "redis":
        return RedisHealthCache(ttl_seconds=settings.provider_health_cache_ttl_seconds)
    return InMemoryHealthCache()
