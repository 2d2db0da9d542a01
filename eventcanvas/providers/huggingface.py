"""Hugging Face Inference API adapter (text-to-image models returning raw bytes)."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx

from eventcanvas.core.config import Settings
from eventcanvas.generation.errors import ImageProviderError
from eventcanvas.generation.types import (
    EffectiveSettings,
    GenerationRequest,
    GenerationResponse,
    NumericRange,
    ProviderCapabilities,
    dimensions_for,
)
from eventcanvas.providers.base import ProviderAdapter


_ASPECT_RATIOS = ("1:1", "16:9", "9:16", "4:3", "3:4", "3:2", "2:3")


def _pixel_labels(ratios: tuple[str, ...]) -> Dict[str, str]:
    labels = {}
    for ratio in ratios:
        width, height = dimensions_for(ratio)
        labels[ratio] = f"{width}x{height}"
    return labels


class HuggingFaceAdapter(ProviderAdapter):
    provider_id = "huggingface"
    capabilities = ProviderCapabilities(
        provider="huggingface",
        name="Hugging Face",
        description="Open diffusion models served by the Hugging Face Inference API.",
        supported_aspect_ratios=_ASPECT_RATIOS,
        size_labels=_pixel_labels(_ASPECT_RATIOS),
        supported_qualities=("fast", "standard", "high"),
        default_quality="standard",
        max_prompt_length=500,
        inference_steps=NumericRange(min=1, max=50, default=25),
        guidance_scale=NumericRange(min=1.0, max=20.0, default=7.5),
        supports_negative_prompts=True,
        cost_per_image=0.01,
    )

    def __init__(
        self,
        *,
        api_token: str,
        model: str,
        base_url: str = "https://api-inference.huggingface.co",
        timeout_seconds: float = 120.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds, client=client)
        self._api_token = api_token.strip()
        self._model = model.strip()
        self._base_url = base_url.rstrip("/")

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return bool(settings.hugging_face_api_token.strip() and settings.huggingface_model.strip())

    @classmethod
    def from_settings(cls, settings: Settings, *, client: Optional[httpx.Client] = None) -> "HuggingFaceAdapter":
        return cls(
            api_token=settings.hugging_face_api_token,
            model=settings.huggingface_model,
            base_url=settings.huggingface_base_url,
            timeout_seconds=settings.provider_request_timeout_seconds,
            client=client,
        )

    def _headers(self) -> Dict[str, str]:
        if not self._api_token:
            raise ImageProviderError(f"{self._error_prefix}_api_token_missing")
        return {
            "Authorization": f"Bearer {self._api_token}",
            "Accept": "image/png",
        }

    def model_for(self, settings: EffectiveSettings) -> str:
        model = getattr(settings.options, "model", None)
        return (model or self._model).strip()

    def _endpoint(self, model: str) -> str:
        if not model:
            raise ImageProviderError(f"{self._error_prefix}_model_missing")
        return f"{self._base_url}/models/{model}"

    def _parameters(self, request: GenerationRequest, settings: EffectiveSettings) -> Dict[str, Any]:
        width, height = dimensions_for(request.aspect_ratio)
        parameters: Dict[str, Any] = {
            "width": width,
            "height": height,
            "num_inference_steps": self.inference_steps_for(request, settings),
            "guidance_scale": self.guidance_scale_for(settings),
        }
        negative_prompt = self.negative_prompt_for(settings)
        if negative_prompt:
            parameters["negative_prompt"] = negative_prompt
        return parameters

    def generate(
        self,
        request: GenerationRequest,
        settings: EffectiveSettings,
        *,
        seed: Optional[int],
    ) -> GenerationResponse:
        started = time.perf_counter()
        model = self.model_for(settings)
        parameters = self._parameters(request, settings)
        if seed is not None:
            parameters["seed"] = seed

        response = self._post(
            self._endpoint(model),
            headers=self._headers(),
            json={"inputs": request.prompt, "parameters": parameters},
        )
        image_bytes, mime_type = self._binary_image(response)

        return self._response(
            request,
            image_bytes=image_bytes,
            mime_type=mime_type,
            started=started,
            seed=seed,
            width=parameters["width"],
            height=parameters["height"],
            provider_data={"model": model, "parameters": parameters},
        )

    def probe(self, *, timeout_seconds: float = 5.0) -> None:
        self._probe_get(
            f"{self._base_url}/status/{self._model}",
            headers=self._headers(),
            timeout_seconds=timeout_seconds,
        )
