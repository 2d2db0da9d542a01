"""Qwen-Image through the Hugging Face inference router."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from eventcanvas.core.config import Settings
from eventcanvas.generation.types import (
    ALL_ASPECT_RATIOS,
    EffectiveSettings,
    GenerationRequest,
    NumericRange,
    ProviderCapabilities,
    dimensions_for,
)
from eventcanvas.providers.huggingface import HuggingFaceAdapter, _pixel_labels


class QwenAdapter(HuggingFaceAdapter):
    provider_id = "qwen"
    capabilities = ProviderCapabilities(
        provider="qwen",
        name="Qwen Image",
        description="Qwen-Image via Hugging Face inference providers; good at rendering text.",
        supported_aspect_ratios=ALL_ASPECT_RATIOS,
        size_labels=_pixel_labels(ALL_ASPECT_RATIOS),
        supported_qualities=("fast", "standard", "high", "ultra"),
        default_quality="standard",
        max_prompt_length=1000,
        inference_steps=NumericRange(min=1, max=50, default=25),
        guidance_scale=NumericRange(min=1.0, max=10.0, default=4.0),
        supports_negative_prompts=True,
        cost_per_image=0.02,
    )

    def __init__(
        self,
        *,
        api_token: str,
        model: str = "Qwen/Qwen-Image",
        base_url: str = "https://router.huggingface.co/hf-inference/models",
        timeout_seconds: float = 120.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(
            api_token=api_token,
            model=model,
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            client=client,
        )

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return bool(settings.hugging_face_api_token.strip() and settings.qwen_model.strip())

    @classmethod
    def from_settings(cls, settings: Settings, *, client: Optional[httpx.Client] = None) -> "QwenAdapter":
        return cls(
            api_token=settings.hugging_face_api_token,
            model=settings.qwen_model,
            base_url=settings.qwen_base_url,
            timeout_seconds=settings.provider_request_timeout_seconds,
            client=client,
        )

    def model_for(self, settings: EffectiveSettings) -> str:
        return self._model

    def _endpoint(self, model: str) -> str:
        return f"{self._base_url}/{model}"

    def _parameters(self, request: GenerationRequest, settings: EffectiveSettings) -> Dict[str, Any]:
        width, height = dimensions_for(request.aspect_ratio)
        return {
            "width": width,
            "height": height,
            "num_inference_steps": self.inference_steps_for(request, settings),
            "true_cfg_scale": self.guidance_scale_for(settings),
            # Qwen-Image expects a negative prompt; a single space means "none".
            "negative_prompt": self.negative_prompt_for(settings) or " ",
        }

    def probe(self, *, timeout_seconds: float = 5.0) -> None:
        self._probe_get(
            self._endpoint(self._model),
            headers=self._headers(),
            timeout_seconds=timeout_seconds,
        )
