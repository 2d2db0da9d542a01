"""Stability AI Stable Image Core adapter."""

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
    ProviderCapabilities,
)
from eventcanvas.providers.base import ProviderAdapter, decode_base64_image


_ASPECT_RATIOS = ("1:1", "16:9", "9:16", "3:2", "2:3", "4:5")
_MIME_TYPES = {"png": "image/png", "jpeg": "image/jpeg", "webp": "image/webp"}


class StabilityAdapter(ProviderAdapter):
    provider_id = "stability"
    capabilities = ProviderCapabilities(
        provider="stability",
        name="Stability AI",
        description="Stable Image Core; fast general-purpose photographic and illustrative output.",
        supported_aspect_ratios=_ASPECT_RATIOS,
        size_labels={ratio: ratio for ratio in _ASPECT_RATIOS},
        supported_qualities=("fast", "standard", "high", "ultra"),
        default_quality="standard",
        max_prompt_length=10000,
        supports_seeds=True,
        supports_negative_prompts=True,
        cost_per_image=0.03,
    )

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.stability.ai",
        timeout_seconds: float = 120.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds, client=client)
        self._api_key = api_key.strip()
        self._base_url = base_url.rstrip("/")

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return bool(settings.stability_api_key.strip())

    @classmethod
    def from_settings(cls, settings: Settings, *, client: Optional[httpx.Client] = None) -> "StabilityAdapter":
        return cls(
            api_key=settings.stability_api_key,
            base_url=settings.stability_base_url,
            timeout_seconds=settings.provider_request_timeout_seconds,
            client=client,
        )

    def _auth_headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ImageProviderError("stability_api_key_missing")
        return {"Authorization": f"Bearer {self._api_key}"}

    def generate(
        self,
        request: GenerationRequest,
        settings: EffectiveSettings,
        *,
        seed: Optional[int],
    ) -> GenerationResponse:
        started = time.perf_counter()
        options = settings.options
        output_format = getattr(options, "output_format", None) or "png"
        fields: Dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio,
            "output_format": output_format,
        }
        if seed is not None:
            fields["seed"] = str(seed)
        negative_prompt = self.negative_prompt_for(settings)
        if negative_prompt:
            fields["negative_prompt"] = negative_prompt
        if getattr(options, "style_preset", None):
            fields["style_preset"] = options.style_preset

        headers = self._auth_headers()
        headers["Accept"] = "application/json"
        response = self._post(
            f"{self._base_url}/v2beta/stable-image/generate/core",
            headers=headers,
            files={key: (None, value) for key, value in fields.items()},
        )
        body = self._json(response)

        finish_reason = str(body.get("finish_reason") or "SUCCESS").upper()
        if finish_reason == "CONTENT_FILTERED":
            raise ImageProviderError("stability_content_filtered")
        encoded = str(body.get("image") or "").strip()
        if not encoded:
            raise ImageProviderError("stability_image_missing")
        image_bytes, mime_type = decode_base64_image(encoded, default_mime_type=_MIME_TYPES[output_format])

        return self._response(
            request,
            image_bytes=image_bytes,
            mime_type=mime_type,
            started=started,
            seed=seed,
            provider_data={
                "finish_reason": finish_reason,
                "output_format": output_format,
                "returned_seed": body.get("seed"),
            },
        )

    def probe(self, *, timeout_seconds: float = 5.0) -> None:
        self._probe_get(
            f"{self._base_url}/v1/user/balance",
            headers=self._auth_headers(),
            timeout_seconds=timeout_seconds,
        )
