"""Midjourney adapter via a configured HTTP relay (Midjourney has no public API)."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx

from eventcanvas.core.config import Settings
from eventcanvas.generation.errors import ImageProviderError
from eventcanvas.generation.types import (
    ALL_ASPECT_RATIOS,
    EffectiveSettings,
    GenerationRequest,
    GenerationResponse,
    ProviderCapabilities,
)
from eventcanvas.providers.base import ProviderAdapter


class MidjourneyAdapter(ProviderAdapter):
    provider_id = "midjourney"
    capabilities = ProviderCapabilities(
        provider="midjourney",
        name="Midjourney",
        description="Midjourney through a relay service; artistic, stylized imagery.",
        supported_aspect_ratios=ALL_ASPECT_RATIOS,
        size_labels={ratio: f"--ar {ratio}" for ratio in ALL_ASPECT_RATIOS},
        supported_qualities=("fast", "standard", "high", "ultra"),
        default_quality="standard",
        max_prompt_length=4000,
        supports_seeds=True,
        cost_per_image=0.05,
    )

    def __init__(
        self,
        *,
        relay_url: str,
        relay_token: str = "",
        timeout_seconds: float = 120.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds, client=client)
        self._relay_url = relay_url.strip()
        self._relay_token = relay_token.strip()

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return bool(settings.midjourney_relay_url.strip())

    @classmethod
    def from_settings(cls, settings: Settings, *, client: Optional[httpx.Client] = None) -> "MidjourneyAdapter":
        return cls(
            relay_url=settings.midjourney_relay_url,
            relay_token=settings.midjourney_relay_token,
            timeout_seconds=settings.provider_request_timeout_seconds,
            client=client,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._relay_token:
            headers["Authorization"] = f"Bearer {self._relay_token}"
        return headers

    def _url(self) -> str:
        if not self._relay_url:
            raise ImageProviderError("midjourney_relay_url_missing")
        return self._relay_url

    def generate(
        self,
        request: GenerationRequest,
        settings: EffectiveSettings,
        *,
        seed: Optional[int],
    ) -> GenerationResponse:
        started = time.perf_counter()
        options = settings.options
        payload: Dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio,
            "quality": self.quality_for(request, settings),
        }
        if seed is not None:
            payload["seed"] = seed
        for knob in ("stylize", "chaos", "version"):
            value = getattr(options, knob, None)
            if value is not None:
                payload[knob] = value

        response = self._post(self._url(), headers=self._headers(), json=payload)
        body = self._json(response)

        image_url = str(body.get("image_url") or body.get("url") or "").strip()
        image_base64 = str(body.get("image_base64") or body.get("b64_json") or "").strip()
        mime_type = str(body.get("mime_type") or "image/png").strip() or "image/png"
        if image_base64:
            image_bytes, mime_type = self._image_from_reference(image_base64, default_mime_type=mime_type)
        elif image_url:
            image_bytes, mime_type = self._image_from_reference(image_url)
        else:
            raise ImageProviderError("midjourney_relay_missing_image")

        out_width = body.get("width")
        out_height = body.get("height")
        return self._response(
            request,
            image_bytes=image_bytes,
            mime_type=mime_type,
            started=started,
            seed=seed,
            width=out_width if isinstance(out_width, int) else None,
            height=out_height if isinstance(out_height, int) else None,
            provider_data={
                "job_id": body.get("job_id") or body.get("id"),
                "image_url": image_url or None,
            },
        )

    def probe(self, *, timeout_seconds: float = 5.0) -> None:
        self._probe_get(self._url(), headers=self._headers(), timeout_seconds=timeout_seconds)
