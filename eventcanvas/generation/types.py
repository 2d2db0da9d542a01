"""Shared contracts for provider orchestration: requests, options, capabilities, responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ProviderIdentifier(str, Enum):
    IDEOGRAM = "ideogram"
    HUGGINGFACE = "huggingface"
    STABILITY = "stability"
    MIDJOURNEY = "midjourney"
    QWEN = "qwen"
    FAL_QWEN = "fal-qwen"
    FAL_IDEOGRAM = "fal-ideogram"


AspectRatio = Literal["1:1", "16:9", "9:16", "4:3", "3:4", "4:5", "5:7", "3:2", "2:3", "10:16", "16:10", "1:3", "3:1"]
Quality = Literal["fast", "standard", "high", "ultra"]

QUALITIES: Tuple[str, ...] = ("fast", "standard", "high", "ultra")

ASPECT_RATIO_DIMENSIONS: Dict[str, Tuple[int, int]] = {
    "1:1": (1024, 1024),
    "16:9": (1024, 576),
    "9:16": (576, 1024),
    "4:3": (1024, 768),
    "3:4": (768, 1024),
    "4:5": (1024, 1280),
    "5:7": (1024, 1434),
    "3:2": (1024, 683),
    "2:3": (683, 1024),
    "10:16": (640, 1024),
    "16:10": (1024, 640),
    "1:3": (341, 1024),
    "3:1": (1024, 341),
}

ALL_ASPECT_RATIOS: Tuple[str, ...] = tuple(ASPECT_RATIO_DIMENSIONS)


def dimensions_for(aspect_ratio: str) -> Tuple[int, int]:
    return ASPECT_RATIO_DIMENSIONS.get(aspect_ratio, (1024, 1024))


def megapixels_for(aspect_ratio: str) -> float:
    width, height = dimensions_for(aspect_ratio)
    return (width * height) / 1_000_000


RenderingSpeed = Literal["TURBO", "BALANCED", "QUALITY"]
FalImageSize = Literal["square_hd", "square", "portrait_4_3", "portrait_16_9", "landscape_4_3", "landscape_16_9"]


class _ProviderOptionsBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class IdeogramOptions(_ProviderOptionsBase):
    provider: Literal["ideogram"] = "ideogram"
    rendering_speed: Optional[RenderingSpeed] = None
    magic_prompt: Optional[Literal["ON", "OFF", "AUTO"]] = None
    style_type: Optional[Literal["AUTO", "GENERAL", "REALISTIC", "DESIGN", "FICTION"]] = None
    negative_prompt: Optional[str] = None


class HuggingFaceOptions(_ProviderOptionsBase):
    provider: Literal["huggingface"] = "huggingface"
    model: Optional[str] = None
    num_inference_steps: Optional[int] = None
    guidance_scale: Optional[float] = None
    negative_prompt: Optional[str] = None


class StabilityOptions(_ProviderOptionsBase):
    provider: Literal["stability"] = "stability"
    style_preset: Optional[str] = None
    negative_prompt: Optional[str] = None
    output_format: Optional[Literal["png", "jpeg", "webp"]] = None


class MidjourneyOptions(_ProviderOptionsBase):
    provider: Literal["midjourney"] = "midjourney"
    stylize: Optional[int] = None
    chaos: Optional[int] = None
    version: Optional[str] = None


class QwenOptions(_ProviderOptionsBase):
    provider: Literal["qwen"] = "qwen"
    num_inference_steps: Optional[int] = None
    true_cfg_scale: Optional[float] = None
    negative_prompt: Optional[str] = None


class FalQwenOptions(_ProviderOptionsBase):
    provider: Literal["fal-qwen"] = "fal-qwen"
    image_size: Optional[FalImageSize] = None
    num_inference_steps: Optional[int] = None
    guidance_scale: Optional[float] = None
    num_images: Optional[int] = None
    enable_safety_checker: Optional[bool] = None
    sync_mode: Optional[bool] = None
    negative_prompt: Optional[str] = None


class FalIdeogramOptions(_ProviderOptionsBase):
    provider: Literal["fal-ideogram"] = "fal-ideogram"
    rendering_speed: Optional[RenderingSpeed] = None
    expand_prompt: Optional[bool] = None
    style: Optional[Literal["AUTO", "GENERAL", "REALISTIC", "DESIGN"]] = None
    negative_prompt: Optional[str] = None
    num_images: Optional[int] = None
    image_size: Optional[FalImageSize] = None


ProviderOptions = Annotated[
    Union[
        IdeogramOptions,
        HuggingFaceOptions,
        StabilityOptions,
        MidjourneyOptions,
        QwenOptions,
        FalQwenOptions,
        FalIdeogramOptions,
    ],
    Field(discriminator="provider"),
]

PROVIDER_OPTIONS_ADAPTER: TypeAdapter[Any] = TypeAdapter(ProviderOptions)

OPTIONS_BY_PROVIDER: Dict[str, type[_ProviderOptionsBase]] = {
    "ideogram": IdeogramOptions,
    "huggingface": HuggingFaceOptions,
    "stability": StabilityOptions,
    "midjourney": MidjourneyOptions,
    "qwen": QwenOptions,
    "fal-qwen": FalQwenOptions,
    "fal-ideogram": FalIdeogramOptions,
}


def empty_options(provider_id: str) -> Any:
    return OPTIONS_BY_PROVIDER[provider_id]()


def parse_options(payload: Mapping[str, Any] | None, provider_id: str) -> Any:
    """Parse stored specific settings into the provider's options variant."""

    data = dict(payload or {})
    data.setdefault("provider", provider_id)
    return PROVIDER_OPTIONS_ADAPTER.validate_python(data)


def merge_options(base: Any, override: Any | None) -> Any:
    """Overlay the non-empty fields of ``override`` onto ``base`` (same variant)."""

    if override is None:
        return base
    updates = override.model_dump(exclude_none=True, exclude={"provider"})
    if not updates:
        return base
    return base.model_copy(update=updates)


class BaseProfileSettings(BaseModel):
    """Knobs shared by every provider; stored as a profile's base settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    inference_steps: Optional[int] = None
    guidance_scale: Optional[float] = None
    default_quality: Optional[Quality] = None
    enable_safety_checker: Optional[bool] = None
    num_images: Optional[int] = Field(default=None, ge=1)
    max_cost_per_image: Optional[float] = Field(default=None, ge=0)
    max_daily_cost: Optional[float] = Field(default=None, ge=0)


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    aspect_ratio: AspectRatio = "1:1"
    quality: Optional[Quality] = None
    user_id: str
    event_type: Optional[str] = None
    event_details: Dict[str, Any] = Field(default_factory=dict)
    seed: Optional[int] = Field(default=None, ge=0)
    randomize_seed: bool = False
    provider_options: Optional[ProviderOptions] = None
    max_cost: Optional[float] = None


@dataclass(frozen=True)
class NumericRange:
    min: float
    max: float
    default: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class ProviderCapabilities:
    provider: str
    name: str
    description: str
    supported_aspect_ratios: Tuple[str, ...]
    size_labels: Mapping[str, str]
    supported_qualities: Tuple[str, ...]
    default_quality: str
    max_prompt_length: int
    inference_steps: Optional[NumericRange] = None
    guidance_scale: Optional[NumericRange] = None
    supports_seeds: bool = False
    supports_negative_prompts: bool = False
    supports_multiple_images: bool = False
    max_images: int = 1
    supports_safety_checker: bool = False
    cost_per_megapixel: Optional[float] = None
    cost_per_image: Optional[float] = None
    quality_cost_multipliers: Mapping[str, float] = field(default_factory=dict)

    @property
    def supported_image_sizes(self) -> Tuple[str, ...]:
        return tuple(sorted(set(self.size_labels.values())))

    def as_dict(self) -> Dict[str, Any]:
        def _range(value: Optional[NumericRange]) -> Optional[Dict[str, float]]:
            if value is None:
                return None
            return {"min": value.min, "max": value.max, "default": value.default}

        return {
            "provider": self.provider,
            "name": self.name,
            "description": self.description,
            "supported_aspect_ratios": list(self.supported_aspect_ratios),
            "supported_image_sizes": list(self.supported_image_sizes),
            "supported_qualities": list(self.supported_qualities),
            "default_quality": self.default_quality,
            "max_prompt_length": self.max_prompt_length,
            "inference_steps": _range(self.inference_steps),
            "guidance_scale": _range(self.guidance_scale),
            "supports_seeds": self.supports_seeds,
            "supports_negative_prompts": self.supports_negative_prompts,
            "supports_multiple_images": self.supports_multiple_images,
            "max_images": self.max_images,
            "supports_safety_checker": self.supports_safety_checker,
            "cost_per_megapixel": self.cost_per_megapixel,
            "cost_per_image": self.cost_per_image,
        }


@dataclass(frozen=True)
class EffectiveSettings:
    """Settings after merging capability defaults, profile layers and request options.

    ``inference_steps``/``guidance_scale`` stay ``None`` when no layer above the
    capability defaults set them; adapters then fall back to their quality presets.
    """

    provider: str
    options: Any
    default_quality: str
    inference_steps: Optional[int] = None
    guidance_scale: Optional[float] = None
    enable_safety_checker: Optional[bool] = None
    num_images: int = 1
    max_cost_per_image: Optional[float] = None
    max_daily_cost: Optional[float] = None
    profile_id: Optional[str] = None
    profile_version: Optional[int] = None


@dataclass(frozen=True)
class GenerationResponse:
    image_data: bytes
    provider: str
    mime_type: str
    cost: float
    generation_time_ms: int
    seed: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    provider_data: Dict[str, Any] = field(default_factory=dict)

    def ledger_fields(self) -> Dict[str, Any]:
        """Fields the caller persists in its generation record."""

        return {
            "provider": self.provider,
            "cost": self.cost,
            "generation_time_ms": self.generation_time_ms,
            "seed": self.seed,
            "mime_type": self.mime_type,
        }


def request_quality(request: GenerationRequest, settings: EffectiveSettings) -> str:
    return request.quality or settings.default_quality
