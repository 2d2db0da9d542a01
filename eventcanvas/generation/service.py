"""Provider orchestration entry points used by the app and the admin surface."""

from __future__ import annotations

from dataclasses import dataclass, replace
import math
import time
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from eventcanvas.core.logger import get_logger, truncate_prompt
from eventcanvas.core.metrics import record_generation, record_provider_error
from eventcanvas.core.observability import capture_exception, sentry_scope
from eventcanvas.generation.errors import ErrorCode, classify, insufficient_credits, invalid_parameters
from eventcanvas.generation.registry import ProviderRegistry, get_provider_registry
from eventcanvas.generation.seed import resolve_seed
from eventcanvas.generation.settings_store import (
    SettingsProfileInput,
    delete_profile,
    get_effective_settings,
    list_profiles,
    upsert_profile,
)
from eventcanvas.generation.types import (
    EffectiveSettings,
    GenerationRequest,
    GenerationResponse,
    ProviderCapabilities,
)
from eventcanvas.providers import ProviderAdapter, adapter_class
from eventcanvas.storage.models import ProviderSettingsProfile


logger = get_logger("eventcanvas.generation")

CreditCheck = Callable[[GenerationRequest], bool]


@dataclass(frozen=True)
class CostEstimate:
    provider: str
    cost: float
    quality: str
    num_images: int
    profile_id: Optional[str] = None
    max_daily_cost: Optional[float] = None


@dataclass(frozen=True)
class _PreparedGeneration:
    provider: str
    adapter: ProviderAdapter
    settings: EffectiveSettings
    seed: Optional[int]
    cost: float


def _check_budget(request: GenerationRequest, credit_check: Optional[CreditCheck]) -> None:
    if request.max_cost is not None and (not math.isfinite(request.max_cost) or request.max_cost < 0):
        raise insufficient_credits(None, f"max_cost_invalid value={request.max_cost}")
    if credit_check is not None and not credit_check(request):
        raise insufficient_credits(None, f"credit_check_rejected user_id={request.user_id}")


def _prepare(
    session: Session,
    request: GenerationRequest,
    provider_id: str,
    registry: ProviderRegistry,
) -> _PreparedGeneration:
    adapter = registry.adapter_for(provider_id)
    capabilities = adapter.get_capabilities()
    settings = get_effective_settings(
        session,
        provider_id,
        capabilities=capabilities,
        provider_options=request.provider_options,
    )
    seed = resolve_seed(request) if capabilities.supports_seeds else None
    adapter.validate_params(request, settings)
    cost = adapter.estimate_cost(request, settings)
    if request.max_cost is not None and cost > request.max_cost:
        raise insufficient_credits(
            provider_id,
            f"estimated_cost_exceeds_max_cost cost={cost:.6f} max_cost={request.max_cost}",
        )
    return _PreparedGeneration(provider=provider_id, adapter=adapter, settings=settings, seed=seed, cost=cost)


def generate_image(
    session: Session,
    request: GenerationRequest,
    preferred_provider: Optional[str] = None,
    *,
    registry: Optional[ProviderRegistry] = None,
    credit_check: Optional[CreditCheck] = None,
) -> GenerationResponse:
    """Generate one image on a single selected provider.

    Raises ``ClassifiedError`` for every failure. Budget and parameter checks run
    before any network call; a failed call is never retried on another provider.
    """

    registry = registry or get_provider_registry()
    _check_budget(request, credit_check)

    provider_id = registry.select_provider(preferred_provider)
    prepared = _prepare(session, request, provider_id, registry)

    started = time.perf_counter()
    with sentry_scope(provider=provider_id):
        try:
            generated = prepared.adapter.generate(request, prepared.settings, seed=prepared.seed)
        except Exception as exc:
            error = classify(exc, provider=provider_id)
            registry.record_failure(error)
            record_provider_error(provider=provider_id, code=error.code.value)
            record_generation(provider=provider_id, outcome="failed")
            logger.warning(
                "provider_generation_failed",
                provider=provider_id,
                code=error.code.value,
                retryable=error.retryable,
                detail=error.detail,
                prompt=truncate_prompt(request.prompt),
            )
            if error.code == ErrorCode.UNKNOWN:
                capture_exception(exc)
            raise error from exc

    response = replace(generated, provider=provider_id, cost=prepared.cost)
    duration_ms = (time.perf_counter() - started) * 1000
    record_generation(provider=provider_id, outcome="succeeded", cost=prepared.cost, duration_ms=duration_ms)
    logger.info(
        "provider_generation_succeeded",
        provider=provider_id,
        cost=prepared.cost,
        seed=response.seed,
        generation_time_ms=response.generation_time_ms,
        aspect_ratio=request.aspect_ratio,
        event_type=request.event_type,
        profile_id=prepared.settings.profile_id,
        prompt=truncate_prompt(request.prompt),
    )
    return response


def estimate_generation_cost(
    session: Session,
    request: GenerationRequest,
    provider_id: str,
    *,
    registry: Optional[ProviderRegistry] = None,
) -> CostEstimate:
    """Price a request on a provider without generating anything.

    The active profile's ``max_daily_cost`` is reported for the caller to
    enforce against its own ledger.
    """

    registry = registry or get_provider_registry()
    prepared = _prepare(session, request, provider_id, registry)
    return CostEstimate(
        provider=provider_id,
        cost=prepared.cost,
        quality=prepared.adapter.quality_for(request, prepared.settings),
        num_images=prepared.adapter.num_images_for(prepared.settings),
        profile_id=prepared.settings.profile_id,
        max_daily_cost=prepared.settings.max_daily_cost,
    )


def list_available_providers(*, registry: Optional[ProviderRegistry] = None) -> list[str]:
    return (registry or get_provider_registry()).list_available()


def get_providers_health(*, registry: Optional[ProviderRegistry] = None) -> Dict[str, Dict[str, Any]]:
    statuses = (registry or get_provider_registry()).check_health_all()
    return {provider_id: status.as_dict() for provider_id, status in statuses.items()}


def get_provider_capabilities(provider_id: str) -> ProviderCapabilities:
    try:
        return adapter_class(provider_id).capabilities
    except KeyError as exc:
        raise invalid_parameters(provider_id, f"unknown_provider provider={provider_id}") from exc


def create_or_update_settings_profile(
    session: Session,
    payload: SettingsProfileInput,
    *,
    actor_id: Optional[str] = None,
) -> ProviderSettingsProfile:
    profile = upsert_profile(session, payload, actor_id=actor_id)
    logger.info(
        "provider_settings_profile_upserted",
        profile_id=profile.id,
        provider=profile.provider_id,
        name=profile.name,
        version=profile.version,
        is_default=profile.is_default,
        actor_id=actor_id,
    )
    return profile


def list_settings_profiles(
    session: Session,
    *,
    provider_id: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> list[ProviderSettingsProfile]:
    return list_profiles(session, provider_id=provider_id, is_active=is_active)


def delete_settings_profile(session: Session, profile_id: str, *, actor_id: Optional[str] = None) -> None:
    provider_id = delete_profile(session, profile_id)
    logger.info(
        "provider_settings_profile_deleted",
        profile_id=profile_id,
        provider=provider_id,
        actor_id=actor_id,
    )
