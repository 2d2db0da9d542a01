"""Ideogram v3 direct API adapter."""

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
from eventcanvas.providers.base import ProviderAdapter, RenderingSpeedMixin


_ASPECT_RATIOS = ("1:1", "16:9", "9:16", "4:3", "3:4", "3:2", "2:3", "10:16", "16:10", "1:3", "3:1")


class IdeogramAdapter(RenderingSpeedMixin, ProviderAdapter):
    provider_id = "ideogram"
    capabilities = ProviderCapabilities(
        provider="ideogram",
        name="Ideogram",
        description="Ideogram v3 with strong typography; renders text inside images.",
        supported_aspect_ratios=_ASPECT_RATIOS,
        size_labels={ratio: ratio.replace(":", "x") for ratio in _ASPECT_RATIOS},
        supported_qualities=("fast", "standard", "high"),
        default_quality="standard",
        max_prompt_length=2000,
        supports_seeds=True,
        supports_negative_prompts=True,
        cost_per_image=0.08,
        quality_cost_multipliers={"fast": 0.8, "standard": 1.0, "high": 1.5},
    )

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.ideogram.ai",
        timeout_seconds: float = 120.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds, client=client)
        self._api_key = api_key.strip()
        self._base_url = base_url.rstrip("/")

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return bool(settings.ideogram_api_key.strip())

    @classmethod
    def from_settings(cls, settings: Settings, *, client: Optional[httpx.Client] = None) -> "IdeogramAdapter":
        return cls(
            api_key=settings.ideogram_api_key,
            base_url=settings.ideogram_base_url,
            timeout_seconds=settings.provider_request_timeout_seconds,
            client=client,
        )

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ImageProviderError("ideogram_api_key_missing")
        return {"Api-Key": self._api_key}

    def generate(
        self,
        request: GenerationRequest,
        settings: EffectiveSettings,
        *,
        seed: Optional[int],
    ) -> GenerationResponse:
        started = time.perf_counter()
        options = settings.options
        rendering_speed = self.rendering_speed_for(request, settings)
        fields: Dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": self.capabilities.size_labels[request.aspect_ratio],
            "rendering_speed": rendering_speed,
        }
        if seed is not None:
            fields["seed"] = str(seed)
        if getattr(options, "magic_prompt", None):
            fields["magic_prompt"] = options.magic_prompt
        if getattr(options, "style_type", None):
            fields["style_type"] = options.style_type
        negative_prompt = self.negative_prompt_for(settings)
        if negative_prompt:
            fields["negative_prompt"] = negative_prompt

        # Ideogram only accepts multipart bodies; (None, value) parts carry plain fields.
        response = self._post(
            f"{self._base_url}/v1/ideogram-v3/generate",
            headers=self._headers(),
            files={key: (None, value) for key, value in fields.items()},
        )
        body = self._json(response)

        data = body.get("data")
        first = data[0] if isinstance(data, list) and data and isinstance(data[0], dict) else {}
        image_url = str(first.get("url") or body.get("url") or "").strip()
        if not image_url:
            raise ImageProviderError("ideogram_image_url_missing")
        image_bytes, mime_type = self._download(image_url)

        return self._response(
            request,
            image_bytes=image_bytes,
            mime_type=mime_type,
            started=started,
            seed=seed,
            provider_data={
                "api_version": "v3",
                "rendering_speed": rendering_speed,
                "image_url": image_url,
                "is_image_safe": first.get("is_image_safe"),
                "resolution": first.get("resolution"),
            },
        )

    def probe(self, *, timeout_seconds: float = 5.0) -> None:
        self._probe_get(
            f"{self._base_url}/v1/health",
            headers=self._headers(),
            timeout_seconds=timeout_seconds,
        )
