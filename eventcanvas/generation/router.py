"""Provider orchestration API routes."""

from __future__ import annotations

import base64
import json
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from eventcanvas.core.config import get_settings
from eventcanvas.generation.errors import ClassifiedError, ErrorCode
from eventcanvas.generation.registry import ProviderRegistry, get_provider_registry
from eventcanvas.generation.service import (
    create_or_update_settings_profile,
    delete_settings_profile,
    estimate_generation_cost,
    generate_image,
    get_provider_capabilities,
    get_providers_health,
    list_available_providers,
    list_settings_profiles,
)
from eventcanvas.generation.settings_store import (
    DefaultProfileDeletionError,
    SettingsConflictError,
    SettingsProfileInput,
    SettingsProfileNotFoundError,
)
from eventcanvas.schemas.generation import (
    CostEstimateRequest,
    CostEstimateResponse,
    ErrorResponse,
    GenerateImageRequest,
    GenerateImageResponse,
    ProviderCapabilitiesResponse,
    ProviderHealthItem,
    ProviderSettingsProfileItem,
    ProviderSettingsProfileListResponse,
    ProvidersHealthResponse,
    ProvidersResponse,
)
from eventcanvas.storage.db import get_session
from eventcanvas.storage.models import ProviderSettingsProfile


router = APIRouter(tags=["generation"])
admin_router = APIRouter(prefix="/admin/provider-settings", tags=["admin"])

ERROR_STATUS_CODES = {
    ErrorCode.INVALID_PARAMETERS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INSUFFICIENT_CREDITS: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.QUOTA_EXCEEDED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.UNKNOWN: status.HTTP_502_BAD_GATEWAY,
}
CLASSIFIED_ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in sorted(set(ERROR_STATUS_CODES.values()))}


def _classified_error_response(error: ClassifiedError) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(error.code, status.HTTP_502_BAD_GATEWAY),
        content=error.as_dict(),
    )


def _enforce_admin_key(admin_key: Optional[str]) -> None:
    expected = get_settings().provider_admin_api_key.strip()
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="provider_admin_api_misconfigured",
        )
    received = (admin_key or "").strip()
    if not received or not secrets.compare_digest(received, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="invalid_provider_admin_key")


def _profile_item(profile: ProviderSettingsProfile) -> ProviderSettingsProfileItem:
    return ProviderSettingsProfileItem(
        id=profile.id,
        provider_id=profile.provider_id,
        name=profile.name,
        description=profile.description,
        base_settings=json.loads(profile.base_settings_json or "{}"),
        specific_settings=json.loads(profile.specific_settings_json or "{}"),
        is_active=profile.is_active,
        is_default=profile.is_default,
        version=profile.version,
        created_by=profile.created_by,
        updated_by=profile.updated_by,
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )


@router.get("/providers", response_model=ProvidersResponse)
def list_providers(registry: ProviderRegistry = Depends(get_provider_registry)) -> ProvidersResponse:
    return ProvidersResponse(
        providers=list_available_providers(registry=registry),
        priority_order=registry.ordered_providers(),
    )


@router.get("/providers/health", response_model=ProvidersHealthResponse)
def providers_health(registry: ProviderRegistry = Depends(get_provider_registry)) -> ProvidersHealthResponse:
    statuses = get_providers_health(registry=registry)
    return ProvidersHealthResponse(
        providers={provider_id: ProviderHealthItem(**item) for provider_id, item in statuses.items()}
    )


@router.get(
    "/providers/{provider_id}/capabilities",
    response_model=ProviderCapabilitiesResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
)
def provider_capabilities(provider_id: str):
    try:
        capabilities = get_provider_capabilities(provider_id)
    except ClassifiedError as exc:
        return _classified_error_response(exc)
    return ProviderCapabilitiesResponse(**capabilities.as_dict())


@router.post("/images/generate", response_model=GenerateImageResponse, responses=CLASSIFIED_ERROR_RESPONSES)
def generate(
    payload: GenerateImageRequest,
    session: Session = Depends(get_session),
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    try:
        result = generate_image(session, payload, payload.preferred_provider, registry=registry)
    except ClassifiedError as exc:
        return _classified_error_response(exc)
    return GenerateImageResponse(
        provider=result.provider,
        image_base64=base64.b64encode(result.image_data).decode("ascii"),
        mime_type=result.mime_type,
        cost=result.cost,
        generation_time_ms=result.generation_time_ms,
        seed=result.seed,
        width=result.width,
        height=result.height,
        provider_data=result.provider_data,
    )


@router.post("/images/estimate", response_model=CostEstimateResponse, responses=CLASSIFIED_ERROR_RESPONSES)
def estimate(
    payload: CostEstimateRequest,
    session: Session = Depends(get_session),
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    try:
        result = estimate_generation_cost(session, payload, payload.provider, registry=registry)
    except ClassifiedError as exc:
        return _classified_error_response(exc)
    return CostEstimateResponse(
        provider=result.provider,
        cost=result.cost,
        quality=result.quality,
        num_images=result.num_images,
        profile_id=result.profile_id,
        max_daily_cost=result.max_daily_cost,
    )


@admin_router.get("", response_model=ProviderSettingsProfileListResponse)
def list_profiles(
    provider_id: Optional[str] = None,
    is_active: Optional[bool] = None,
    admin_key: Optional[str] = Header(default=None, alias="X-EventCanvas-Admin-Key"),
    session: Session = Depends(get_session),
) -> ProviderSettingsProfileListResponse:
    _enforce_admin_key(admin_key)
    profiles = list_settings_profiles(session, provider_id=provider_id, is_active=is_active)
    return ProviderSettingsProfileListResponse(items=[_profile_item(profile) for profile in profiles])


@admin_router.post("", response_model=ProviderSettingsProfileItem)
def upsert_profile(
    payload: SettingsProfileInput,
    admin_key: Optional[str] = Header(default=None, alias="X-EventCanvas-Admin-Key"),
    actor_id: Optional[str] = Header(default=None, alias="X-EventCanvas-Actor-Id"),
    session: Session = Depends(get_session),
) -> ProviderSettingsProfileItem:
    _enforce_admin_key(admin_key)
    try:
        profile = create_or_update_settings_profile(session, payload, actor_id=actor_id)
    except SettingsProfileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SettingsConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _profile_item(profile)


@admin_router.delete("/{profile_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_profile(
    profile_id: str,
    admin_key: Optional[str] = Header(default=None, alias="X-EventCanvas-Admin-Key"),
    actor_id: Optional[str] = Header(default=None, alias="X-EventCanvas-Actor-Id"),
    session: Session = Depends(get_session),
) -> None:
    _enforce_admin_key(admin_key)
    try:
        delete_settings_profile(session, profile_id, actor_id=actor_id)
    except SettingsProfileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (DefaultProfileDeletionError, SettingsConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
