"""Ideogram v3 hosted on fal.ai."""

from __future__ import annotations

from typing import Any, Dict, Optional

from eventcanvas.generation.types import ALL_ASPECT_RATIOS, EffectiveSettings, GenerationRequest, ProviderCapabilities
from eventcanvas.providers.base import RENDERING_SPEED_MULTIPLIERS, RenderingSpeedMixin
from eventcanvas.providers.fal import FAL_IMAGE_SIZES, FalAdapter


class FalIdeogramAdapter(RenderingSpeedMixin, FalAdapter):
    provider_id = "fal-ideogram"
    model_path = "fal-ai/ideogram/v3"
    capabilities = ProviderCapabilities(
        provider="fal-ideogram",
        name="Ideogram v3 (fal.ai)",
        description="Ideogram v3 on fal.ai; best typography, cost scales with rendering speed.",
        supported_aspect_ratios=ALL_ASPECT_RATIOS,
        size_labels=dict(FAL_IMAGE_SIZES),
        supported_qualities=("fast", "standard", "high", "ultra"),
        default_quality="standard",
        max_prompt_length=1000,
        supports_seeds=True,
        supports_negative_prompts=True,
        supports_multiple_images=True,
        max_images=4,
        cost_per_megapixel=0.06,
        quality_cost_multipliers={"fast": 0.5, "standard": 1.0, "high": 1.5, "ultra": 1.5},
    )

    def cost_multiplier(self, request: GenerationRequest, settings: EffectiveSettings) -> float:
        return RENDERING_SPEED_MULTIPLIERS[self.rendering_speed_for(request, settings)]

    def build_input(
        self,
        request: GenerationRequest,
        settings: EffectiveSettings,
        *,
        seed: Optional[int],
    ) -> Dict[str, Any]:
        options = settings.options
        expand_prompt = getattr(options, "expand_prompt", None)
        payload: Dict[str, Any] = {
            "prompt": request.prompt,
            "image_size": self.image_size_for(request, settings),
            "rendering_speed": self.rendering_speed_for(request, settings),
            "expand_prompt": True if expand_prompt is None else expand_prompt,
            "num_images": self.num_images_for(settings),
            "sync_mode": False,
        }
        if seed is not None:
            payload["seed"] = seed
        if getattr(options, "style", None):
            payload["style"] = options.style
        negative_prompt = self.negative_prompt_for(settings)
        if negative_prompt:
            payload["negative_prompt"] = negative_prompt
        return payload
