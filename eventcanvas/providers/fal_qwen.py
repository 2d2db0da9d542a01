"""Qwen-Image hosted on fal.ai."""

from __future__ import annotations

from typing import Any, Dict, Optional

from eventcanvas.generation.types import EffectiveSettings, GenerationRequest, NumericRange, ProviderCapabilities
from eventcanvas.providers.fal import FAL_IMAGE_SIZES, FalAdapter


_ASPECT_RATIOS = ("1:1", "16:9", "9:16", "4:3", "3:4", "4:5", "5:7", "3:2", "2:3")


class FalQwenAdapter(FalAdapter):
    provider_id = "fal-qwen"
    model_path = "fal-ai/qwen-image"
    capabilities = ProviderCapabilities(
        provider="fal-qwen",
        name="Qwen Image (fal.ai)",
        description="Qwen-Image on fal.ai; sharp text rendering, priced per megapixel.",
        supported_aspect_ratios=_ASPECT_RATIOS,
        size_labels={ratio: FAL_IMAGE_SIZES[ratio] for ratio in _ASPECT_RATIOS},
        supported_qualities=("fast", "standard", "high", "ultra"),
        default_quality="standard",
        max_prompt_length=2000,
        inference_steps=NumericRange(min=1, max=50, default=25),
        guidance_scale=NumericRange(min=0.0, max=20.0, default=2.5),
        supports_seeds=True,
        supports_negative_prompts=True,
        supports_multiple_images=True,
        max_images=4,
        supports_safety_checker=True,
        cost_per_megapixel=0.05,
    )

    def build_input(
        self,
        request: GenerationRequest,
        settings: EffectiveSettings,
        *,
        seed: Optional[int],
    ) -> Dict[str, Any]:
        sync_mode = getattr(settings.options, "sync_mode", None)
        payload: Dict[str, Any] = {
            "prompt": request.prompt,
            "image_size": self.image_size_for(request, settings),
            "num_inference_steps": self.inference_steps_for(request, settings),
            "guidance_scale": self.guidance_scale_for(settings),
            "num_images": self.num_images_for(settings),
            "enable_safety_checker": (
                True if settings.enable_safety_checker is None else settings.enable_safety_checker
            ),
            "sync_mode": bool(sync_mode),
        }
        if seed is not None:
            payload["seed"] = seed
        negative_prompt = self.negative_prompt_for(settings)
        if negative_prompt:
            payload["negative_prompt"] = negative_prompt
        return payload
