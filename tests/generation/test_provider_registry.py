from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import threading
import time

import pytest

from eventcanvas.core.config import get_settings
from eventcanvas.generation.errors import (
    ClassifiedError,
    ErrorCode,
    ProviderHTTPError,
    classify,
    invalid_parameters,
    service_unavailable,
)
from eventcanvas.generation.health import REDIS_KEY_PREFIX, HealthStatus, RedisHealthCache
from eventcanvas.generation.registry import get_provider_registry, reset_provider_registry_cache
from tests.generation.conftest import BrokenRedis, FakeRedis, make_registry


def test_list_available_follows_priority_and_skips_disabled() -> None:
    context = make_registry(
        ["stability", "ideogram", "fal-qwen"],
        provider_priority_order="fal-qwen,ideogram",
        providers_disabled="ideogram",
    )
    registry = context.registry

    assert registry.ordered_providers()[:2] == ["fal-qwen", "ideogram"]
    assert registry.list_available() == ["fal-qwen", "stability"]
    assert registry.is_available("ideogram") is False
    assert registry.is_available("midjourney") is False


def test_health_results_are_cached_for_the_ttl() -> None:
    context = make_registry(["ideogram"], provider_health_cache_ttl_seconds=30)
    adapter = context.adapters["ideogram"]

    first = context.registry.check_health("ideogram")
    second = context.registry.check_health("ideogram")
    assert first.healthy is True
    assert second == first
    assert adapter.probe_calls == 1

    context.clock.advance(29)
    context.registry.check_health("ideogram")
    assert adapter.probe_calls == 1

    context.clock.advance(1)
    context.registry.check_health("ideogram")
    assert adapter.probe_calls == 2


def test_concurrent_health_checks_share_one_probe() -> None:
    context = make_registry(["stability"])
    adapter = context.adapters["stability"]
    gate = threading.Event()
    original_probe = adapter.probe

    def slow_probe(*, timeout_seconds: float = 5.0) -> None:
        gate.wait(timeout=2)
        time.sleep(0.05)
        original_probe(timeout_seconds=timeout_seconds)

    adapter.probe = slow_probe  # type: ignore[method-assign]

    with ThreadPoolExecutor(max_workers=6) as pool:
        futures = [pool.submit(context.registry.check_health, "stability") for _ in range(6)]
        gate.set()
        statuses = [future.result() for future in futures]

    assert adapter.probe_calls == 1
    assert all(status.healthy for status in statuses)


def test_failure_threshold_controls_health() -> None:
    context = make_registry(["midjourney"], unhealthy=["midjourney"], provider_health_failure_threshold=2)

    first = context.registry.check_health("midjourney")
    assert first.healthy is True
    assert first.consecutive_failures == 1
    assert first.last_error.startswith("provider_unreachable")

    context.clock.advance(60)
    second = context.registry.check_health("midjourney")
    assert second.healthy is False
    assert second.consecutive_failures == 2

    context.adapters["midjourney"].healthy = True
    context.clock.advance(60)
    recovered = context.registry.check_health("midjourney")
    assert recovered.healthy is True
    assert recovered.consecutive_failures == 0
    assert recovered.last_error is None


def test_unconfigured_and_unknown_providers() -> None:
    context = make_registry(["ideogram"])

    status = context.registry.check_health("stability")
    assert status.available is False
    assert status.healthy is False
    assert status.last_error == "provider_not_configured"

    with pytest.raises(ClassifiedError) as exc_info:
        context.registry.check_health("dall-e")
    assert exc_info.value.code == ErrorCode.INVALID_PARAMETERS


def test_check_health_all_reports_every_provider() -> None:
    context = make_registry(["ideogram", "fal-qwen"], unhealthy=["fal-qwen"])
    statuses = context.registry.check_health_all()

    assert len(statuses) == 7
    assert statuses["ideogram"].healthy is True
    assert statuses["fal-qwen"].healthy is False
    assert statuses["qwen"].available is False


def test_select_provider_picks_first_healthy_in_priority_order() -> None:
    context = make_registry(["ideogram", "stability", "fal-qwen"], unhealthy=["ideogram"])
    assert context.registry.select_provider() == "stability"


def test_select_provider_without_healthy_candidates() -> None:
    context = make_registry(["ideogram", "stability"], unhealthy=["ideogram", "stability"])
    with pytest.raises(ClassifiedError) as exc_info:
        context.registry.select_provider()
    assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE
    assert exc_info.value.detail.startswith("no_healthy_provider")


def test_unhealthy_preferred_provider_never_falls_back() -> None:
    context = make_registry(["ideogram", "stability"], unhealthy=["ideogram"])

    with pytest.raises(ClassifiedError) as exc_info:
        context.registry.select_provider("ideogram")

    assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE
    assert exc_info.value.provider == "ideogram"
    assert "provider=ideogram" in exc_info.value.detail
    assert context.registry.select_provider("stability") == "stability"


def test_preferred_provider_must_be_known_and_available() -> None:
    context = make_registry(["ideogram"], providers_disabled="stability")

    with pytest.raises(ClassifiedError) as unknown:
        context.registry.select_provider("dall-e")
    assert unknown.value.code == ErrorCode.INVALID_PARAMETERS

    with pytest.raises(ClassifiedError) as disabled:
        context.registry.select_provider("stability")
    assert disabled.value.code == ErrorCode.SERVICE_UNAVAILABLE
    assert disabled.value.detail.startswith("provider_disabled")


def test_record_failure_updates_last_error_only_for_transient_codes() -> None:
    context = make_registry(["ideogram"])
    context.registry.check_health("ideogram")

    context.registry.record_failure(invalid_parameters("ideogram", "prompt_empty"))
    assert context.cache.get("ideogram").last_error is None

    context.registry.record_failure(service_unavailable("ideogram", "provider_timeout ReadTimeout"))
    cached = context.cache.get("ideogram")
    assert cached.last_error == "provider_timeout ReadTimeout"
    assert cached.healthy is True

    context.registry.reset_health()
    assert context.cache.get("ideogram") is None


def test_server_error_mentioning_quota_still_updates_health_entry() -> None:
    context = make_registry(["fal-qwen"])
    context.registry.check_health("fal-qwen")

    error = classify(ProviderHTTPError("fal-qwen", 503, "upstream quota service unavailable"), provider="fal-qwen")
    context.registry.record_failure(error)

    assert error.code == ErrorCode.SERVICE_UNAVAILABLE
    assert context.cache.get("fal-qwen").last_error.startswith("provider_server_error status=503")


def test_redis_cache_shares_status_between_registries() -> None:
    redis = FakeRedis()
    first = make_registry(["fal-qwen"], cache=RedisHealthCache(ttl_seconds=30, redis_client=redis))
    second = make_registry(["fal-qwen"], cache=RedisHealthCache(ttl_seconds=30, redis_client=redis))
    second.clock.now = first.clock.now

    first.registry.check_health("fal-qwen")
    status = second.registry.check_health("fal-qwen")

    assert status.healthy is True
    assert second.adapters["fal-qwen"].probe_calls == 0
    assert redis.expirations[f"{REDIS_KEY_PREFIX}fal-qwen"] == 300


def test_redis_cache_fails_open() -> None:
    cache = RedisHealthCache(ttl_seconds=30, redis_client=BrokenRedis())
    context = make_registry(["stability"], cache=cache)

    assert context.registry.check_health("stability").healthy is True
    assert cache.get("stability") is None
    cache.clear()


def test_health_status_json_round_trip() -> None:
    context = make_registry(["ideogram"])
    status = HealthStatus(
        provider="ideogram",
        available=True,
        healthy=False,
        checked_at=context.clock(),
        last_error="provider_server_error status=503",
        consecutive_failures=3,
    )
    assert HealthStatus.from_json(status.to_json()) == status


def test_process_registry_is_rebuilt_from_settings_after_reset(monkeypatch) -> None:
    monkeypatch.setenv("FAL_KEY", "fal-secret")
    monkeypatch.setenv("STABILITY_API_KEY", "stability-secret")
    monkeypatch.setenv("PROVIDERS_DISABLED", "stability")
    monkeypatch.setenv("PROVIDER_PRIORITY_ORDER", "stability,fal-qwen,fal-ideogram")
    monkeypatch.setenv("PROVIDER_HEALTH_CACHE_BACKEND", "memory")
    get_settings.cache_clear()
    reset_provider_registry_cache()
    try:
        registry = get_provider_registry()
        assert get_provider_registry() is registry
        assert registry.list_available() == ["fal-qwen", "fal-ideogram"]
        assert registry.is_available("ideogram") is False
    finally:
        reset_provider_registry_cache()
        get_settings.cache_clear()
