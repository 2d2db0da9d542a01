"""Versioned provider settings profiles and effective-settings resolution."""

from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from sqlalchemy import desc, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from eventcanvas.generation.types import (
    BaseProfileSettings,
    EffectiveSettings,
    ProviderCapabilities,
    ProviderIdentifier,
    empty_options,
    merge_options,
    parse_options,
)
from eventcanvas.storage.models import ProviderSettingsProfile


class SettingsConflictError(RuntimeError):
    """A concurrent write changed the profile (or its default slot) first."""


class SettingsProfileNotFoundError(LookupError):
    pass


class DefaultProfileDeletionError(RuntimeError):
    pass


class SettingsProfileInput(BaseModel):
    """Admin payload for creating or updating a settings profile."""

    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = None
    provider_id: ProviderIdentifier
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None
    base_settings: BaseProfileSettings = Field(default_factory=BaseProfileSettings)
    specific_settings: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    is_default: bool = False
    expected_version: Optional[int] = Field(default=None, ge=1)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name must not be blank")
        return cleaned

    @model_validator(mode="after")
    def _check_specific_settings(self) -> "SettingsProfileInput":
        provider_id = self.provider_id.value
        declared = self.specific_settings.get("provider")
        if declared is not None and declared != provider_id:
            raise ValueError(f"specific_settings belong to provider {declared}, expected {provider_id}")
        try:
            parse_options(self.specific_settings, provider_id)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(part) for part in error["loc"][1:]) for error in exc.errors())
            raise ValueError(f"invalid specific_settings for {provider_id}: {fields or 'payload'}") from exc
        return self

    def specific_settings_json(self) -> str:
        options = parse_options(self.specific_settings, self.provider_id.value)
        return _json_dumps(options.model_dump(exclude_none=True, exclude={"provider"}))

    def base_settings_json(self) -> str:
        return _json_dumps(self.base_settings.model_dump(exclude_none=True))


def _json_dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, sort_keys=True)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def load_base_settings(profile: ProviderSettingsProfile) -> BaseProfileSettings:
    return BaseProfileSettings.model_validate_json(profile.base_settings_json or "{}")


def load_specific_settings(profile: ProviderSettingsProfile) -> Any:
    return parse_options(json.loads(profile.specific_settings_json or "{}"), profile.provider_id)


def get_profile(session: Session, profile_id: str) -> Optional[ProviderSettingsProfile]:
    return session.get(ProviderSettingsProfile, profile_id)


def get_default_profile(session: Session, provider_id: str) -> Optional[ProviderSettingsProfile]:
    return session.scalar(
        select(ProviderSettingsProfile).where(
            ProviderSettingsProfile.provider_id == provider_id,
            ProviderSettingsProfile.is_default.is_(True),
        )
    )


def get_active_profile(session: Session, provider_id: str) -> Optional[ProviderSettingsProfile]:
    """The default profile when active, else the most recently updated active one."""

    default = get_default_profile(session, provider_id)
    if default is not None and default.is_active:
        return default
    return session.scalar(
        select(ProviderSettingsProfile)
        .where(
            ProviderSettingsProfile.provider_id == provider_id,
            ProviderSettingsProfile.is_active.is_(True),
        )
        .order_by(desc(ProviderSettingsProfile.updated_at), desc(ProviderSettingsProfile.version))
        .limit(1)
    )


def list_profiles(
    session: Session,
    *,
    provider_id: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> list[ProviderSettingsProfile]:
    statement = select(ProviderSettingsProfile)
    if provider_id:
        statement = statement.where(ProviderSettingsProfile.provider_id == provider_id)
    if is_active is not None:
        statement = statement.where(ProviderSettingsProfile.is_active.is_(is_active))
    statement = statement.order_by(
        ProviderSettingsProfile.provider_id,
        desc(ProviderSettingsProfile.is_default),
        desc(ProviderSettingsProfile.updated_at),
    )
    return list(session.scalars(statement).all())


def get_effective_settings(
    session: Session,
    provider_id: str,
    *,
    capabilities: ProviderCapabilities,
    provider_options: Any = None,
) -> EffectiveSettings:
    """Merge capability defaults, the active profile and request options (later wins).

    Request options of another provider's variant are not merged; the adapter
    rejects them during validation.
    """

    profile = get_active_profile(session, provider_id)
    base = BaseProfileSettings()
    options = empty_options(provider_id)
    if profile is not None:
        base = load_base_settings(profile)
        options = merge_options(options, load_specific_settings(profile))
    if provider_options is not None and provider_options.provider == provider_id:
        options = merge_options(options, provider_options)

    inference_steps = base.inference_steps
    if getattr(options, "num_inference_steps", None) is not None:
        inference_steps = options.num_inference_steps

    guidance_scale = base.guidance_scale
    for knob in ("guidance_scale", "true_cfg_scale"):
        if getattr(options, knob, None) is not None:
            guidance_scale = getattr(options, knob)

    num_images = base.num_images or 1
    if getattr(options, "num_images", None) is not None:
        num_images = options.num_images

    enable_safety_checker = base.enable_safety_checker
    if getattr(options, "enable_safety_checker", None) is not None:
        enable_safety_checker = options.enable_safety_checker

    return EffectiveSettings(
        provider=provider_id,
        options=options,
        default_quality=base.default_quality or capabilities.default_quality,
        inference_steps=inference_steps,
        guidance_scale=guidance_scale,
        enable_safety_checker=enable_safety_checker,
        num_images=num_images,
        max_cost_per_image=base.max_cost_per_image,
        max_daily_cost=base.max_daily_cost,
        profile_id=profile.id if profile is not None else None,
        profile_version=profile.version if profile is not None else None,
    )


def _find_existing(session: Session, payload: SettingsProfileInput) -> Optional[ProviderSettingsProfile]:
    if payload.id:
        profile = get_profile(session, payload.id)
        if profile is None:
            raise SettingsProfileNotFoundError(f"provider_settings_profile_not_found id={payload.id}")
        if profile.provider_id != payload.provider_id.value:
            raise SettingsConflictError(
                f"provider_settings_profile_provider_mismatch id={payload.id} provider={profile.provider_id}"
            )
        return profile
    return session.scalar(
        select(ProviderSettingsProfile).where(
            ProviderSettingsProfile.provider_id == payload.provider_id.value,
            ProviderSettingsProfile.name == payload.name,
        )
    )


def upsert_profile(
    session: Session,
    payload: SettingsProfileInput,
    *,
    actor_id: Optional[str] = None,
) -> ProviderSettingsProfile:
    """Create or update a profile in one transaction.

    Making a profile the default first clears the flag on every other profile of
    the provider; the partial unique index on ``provider_id WHERE is_default``
    rejects any interleaving that would leave two defaults.
    """

    provider_id = payload.provider_id.value
    now = _now_utc()
    try:
        profile = _find_existing(session, payload)
        if payload.expected_version is not None:
            current = profile.version if profile is not None else None
            if current != payload.expected_version:
                raise SettingsConflictError(
                    f"provider_settings_profile_version_mismatch expected={payload.expected_version} current={current}"
                )

        if payload.is_default:
            clear_statement = (
                update(ProviderSettingsProfile)
                .where(
                    ProviderSettingsProfile.provider_id == provider_id,
                    ProviderSettingsProfile.is_default.is_(True),
                )
                .values(
                    is_default=False,
                    version=ProviderSettingsProfile.version + 1,
                    updated_by=actor_id,
                    updated_at=now,
                )
                .execution_options(synchronize_session="fetch")
            )
            if profile is not None:
                clear_statement = clear_statement.where(ProviderSettingsProfile.id != profile.id)
            session.execute(clear_statement)

        if profile is None:
            profile = ProviderSettingsProfile(
                provider_id=provider_id,
                name=payload.name,
                created_by=actor_id,
                created_at=now,
            )
            session.add(profile)

        profile.name = payload.name
        profile.description = payload.description
        profile.base_settings_json = payload.base_settings_json()
        profile.specific_settings_json = payload.specific_settings_json()
        profile.is_active = payload.is_active
        profile.is_default = payload.is_default
        profile.updated_by = actor_id
        profile.updated_at = now

        session.commit()
    except (IntegrityError, StaleDataError) as exc:
        session.rollback()
        raise SettingsConflictError(
            f"provider_settings_profile_conflict provider={provider_id} name={payload.name}"
        ) from exc
    except (SettingsConflictError, SettingsProfileNotFoundError):
        session.rollback()
        raise

    return profile


def delete_profile(session: Session, profile_id: str) -> str:
    """Delete a non-default profile and return its provider id."""

    profile = get_profile(session, profile_id)
    if profile is None:
        raise SettingsProfileNotFoundError(f"provider_settings_profile_not_found id={profile_id}")
    if profile.is_default:
        raise DefaultProfileDeletionError(
            f"provider_settings_profile_is_default id={profile_id} provider={profile.provider_id}"
        )
    provider_id = profile.provider_id
    try:
        session.delete(profile)
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        raise SettingsConflictError(f"provider_settings_profile_conflict id={profile_id}") from exc
    return provider_id
