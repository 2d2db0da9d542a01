"""Provider availability, cached health probes and provider selection."""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Callable, Dict, Mapping, Optional

from eventcanvas.core.config import Settings, get_settings
from eventcanvas.core.logger import get_logger
from eventcanvas.core.metrics import record_health_probe
from eventcanvas.generation.errors import (
    HEALTH_AFFECTING_CODES,
    ClassifiedError,
    classify,
    invalid_parameters,
    service_unavailable,
)
from eventcanvas.generation.health import HealthCache, HealthStatus, build_health_cache
from eventcanvas.providers import PROVIDER_ADAPTERS, ProviderAdapter


logger = get_logger("eventcanvas.registry")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class ProviderRegistry:
    """Knows which providers exist, which are usable, and which one to pick.

    Health probes are cached per provider for ``provider_health_cache_ttl_seconds``.
    Concurrent callers asking about the same provider share one in-flight probe.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        cache: HealthCache,
        adapters: Optional[Mapping[str, ProviderAdapter]] = None,
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        self._settings = settings
        self._cache = cache
        self._clock = clock
        self._ttl_seconds = settings.provider_health_cache_ttl_seconds
        self._failure_threshold = settings.provider_health_failure_threshold
        self._probe_timeout_seconds = settings.provider_health_probe_timeout_seconds
        if adapters is None:
            adapters = {
                provider_id: adapter_cls.from_settings(settings)
                for provider_id, adapter_cls in PROVIDER_ADAPTERS.items()
                if adapter_cls.is_configured(settings)
            }
        self._adapters: Dict[str, ProviderAdapter] = dict(adapters)
        self._probe_locks: Dict[str, Lock] = {provider_id: Lock() for provider_id in PROVIDER_ADAPTERS}

    def ordered_providers(self) -> list[str]:
        """Every compiled-in provider, configured priority first, then table order."""

        ordered = [provider_id for provider_id in self._settings.priority_order if provider_id in PROVIDER_ADAPTERS]
        ordered.extend(provider_id for provider_id in PROVIDER_ADAPTERS if provider_id not in ordered)
        return ordered

    def _unavailable_reason(self, provider_id: str) -> Optional[str]:
        if provider_id in self._settings.disabled_providers:
            return "provider_disabled"
        if provider_id not in self._adapters:
            return "provider_not_configured"
        return None

    def is_available(self, provider_id: str) -> bool:
        return provider_id in PROVIDER_ADAPTERS and self._unavailable_reason(provider_id) is None

    def list_available(self) -> list[str]:
        return [provider_id for provider_id in self.ordered_providers() if self.is_available(provider_id)]

    def adapter_for(self, provider_id: str) -> ProviderAdapter:
        if provider_id not in PROVIDER_ADAPTERS:
            raise invalid_parameters(provider_id, f"unknown_provider provider={provider_id}")
        reason = self._unavailable_reason(provider_id)
        if reason is not None:
            raise service_unavailable(provider_id, f"{reason} provider={provider_id}")
        return self._adapters[provider_id]

    def _is_fresh(self, status: Optional[HealthStatus]) -> bool:
        if status is None:
            return False
        age = (self._clock() - status.checked_at).total_seconds()
        return 0 <= age < self._ttl_seconds

    def _probe(self, provider_id: str, adapter: ProviderAdapter, previous: Optional[HealthStatus]) -> HealthStatus:
        try:
            adapter.probe(timeout_seconds=self._probe_timeout_seconds)
        except Exception as exc:
            error = classify(exc, provider=provider_id)
            failures = (previous.consecutive_failures if previous is not None else 0) + 1
            healthy = failures < self._failure_threshold
            logger.warning(
                "provider_health_probe_failed",
                provider=provider_id,
                code=error.code.value,
                detail=error.detail,
                consecutive_failures=failures,
                healthy=healthy,
            )
            record_health_probe(provider=provider_id, healthy=False)
            return HealthStatus(
                provider=provider_id,
                available=True,
                healthy=healthy,
                checked_at=self._clock(),
                last_error=error.detail,
                consecutive_failures=failures,
            )

        record_health_probe(provider=provider_id, healthy=True)
        return HealthStatus(
            provider=provider_id,
            available=True,
            healthy=True,
            checked_at=self._clock(),
        )

    def check_health(self, provider_id: str) -> HealthStatus:
        if provider_id not in PROVIDER_ADAPTERS:
            raise invalid_parameters(provider_id, f"unknown_provider provider={provider_id}")
        reason = self._unavailable_reason(provider_id)
        if reason is not None:
            return HealthStatus(
                provider=provider_id,
                available=False,
                healthy=False,
                checked_at=self._clock(),
                last_error=reason,
            )

        cached = self._cache.get(provider_id)
        if self._is_fresh(cached):
            return cached

        with self._probe_locks[provider_id]:
            # Another caller may have refreshed the entry while we waited.
            cached = self._cache.get(provider_id)
            if self._is_fresh(cached):
                return cached
            status = self._probe(provider_id, self._adapters[provider_id], cached)
            self._cache.set(status)
            return status

    def check_health_all(self) -> Dict[str, HealthStatus]:
        return {provider_id: self.check_health(provider_id) for provider_id in self.ordered_providers()}

    def select_provider(self, preferred: Optional[str] = None) -> str:
        """Return the provider to use for one generation.

        A preferred provider is honored only when available and healthy; there is
        no fallback away from an explicit preference.
        """

        if preferred:
            if preferred not in PROVIDER_ADAPTERS:
                raise invalid_parameters(preferred, f"unknown_provider provider={preferred}")
            reason = self._unavailable_reason(preferred)
            if reason is not None:
                raise service_unavailable(preferred, f"{reason} provider={preferred}")
            status = self.check_health(preferred)
            if not status.healthy:
                raise service_unavailable(
                    preferred,
                    f"provider_unhealthy provider={preferred} last_error={status.last_error}",
                )
            selected = preferred
        else:
            available = self.list_available()
            selected = next((provider_id for provider_id in available if self.check_health(provider_id).healthy), "")
            if not selected:
                raise service_unavailable(None, f"no_healthy_provider available={','.join(available) or '-'}")

        logger.info("provider_selected", provider=selected, preferred=preferred)
        return selected

    def record_failure(self, error: ClassifiedError) -> None:
        """Note a generation failure on the provider's cached health entry."""

        if error.provider and error.code in HEALTH_AFFECTING_CODES:
            self._cache.update_last_error(error.provider, error.detail)

    def reset_health(self) -> None:
        self._cache.clear()


@lru_cache(maxsize=1)
def get_provider_registry() -> ProviderRegistry:
    settings = get_settings()
    return ProviderRegistry(settings=settings, cache=build_health_cache(settings))


def reset_provider_registry_cache() -> None:
    get_provider_registry.cache_clear()
