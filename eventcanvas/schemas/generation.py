"""Schemas for provider orchestration endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from eventcanvas.generation.types import GenerationRequest


class GenerateImageRequest(GenerationRequest):
    preferred_provider: Optional[str] = Field(default=None, max_length=32)


class GenerateImageResponse(BaseModel):
    provider: str
    image_base64: str
    mime_type: str
    cost: float
    generation_time_ms: int
    seed: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    provider_data: Dict[str, Any] = Field(default_factory=dict)


class CostEstimateRequest(GenerationRequest):
    provider: str = Field(min_length=1, max_length=32)


class CostEstimateResponse(BaseModel):
    provider: str
    cost: float
    quality: str
    num_images: int
    profile_id: Optional[str] = None
    max_daily_cost: Optional[float] = None


class ErrorResponse(BaseModel):
    code: str
    provider: Optional[str] = None
    detail: str


class ProvidersResponse(BaseModel):
    providers: list[str]
    priority_order: list[str]


class ProviderHealthItem(BaseModel):
    provider: str
    available: bool
    healthy: bool
    checked_at: datetime
    last_error: Optional[str] = None
    consecutive_failures: int = 0


class ProvidersHealthResponse(BaseModel):
    providers: Dict[str, ProviderHealthItem]


class NumericRangeItem(BaseModel):
    min: float
    max: float
    default: float


class ProviderCapabilitiesResponse(BaseModel):
    provider: str
    name: str
    description: str
    supported_aspect_ratios: list[str]
    supported_image_sizes: list[str]
    supported_qualities: list[str]
    default_quality: str
    max_prompt_length: int
    inference_steps: Optional[NumericRangeItem] = None
    guidance_scale: Optional[NumericRangeItem] = None
    supports_seeds: bool
    supports_negative_prompts: bool
    supports_multiple_images: bool
    max_images: int
    supports_safety_checker: bool
    cost_per_megapixel: Optional[float] = None
    cost_per_image: Optional[float] = None


class ProviderSettingsProfileItem(BaseModel):
    id: str
    provider_id: str
    name: str
    description: Optional[str]
    base_settings: Dict[str, Any]
    specific_settings: Dict[str, Any]
    is_active: bool
    is_default: bool
    version: int
    created_by: Optional[str]
    updated_by: Optional[str]
    created_at: datetime
    updated_at: datetime


class ProviderSettingsProfileListResponse(BaseModel):
    items: list[ProviderSettingsProfileItem]
