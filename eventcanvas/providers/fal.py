"""Shared plumbing for models hosted on fal.ai's synchronous run endpoint."""

from __future__ import annotations

from abc import abstractmethod
import time
from typing import Any, Dict, Optional

import httpx

from eventcanvas.core.config import Settings
from eventcanvas.generation.errors import ImageProviderError
from eventcanvas.generation.types import EffectiveSettings, GenerationRequest, GenerationResponse
from eventcanvas.providers.base import ProviderAdapter


FAL_IMAGE_SIZES: Dict[str, str] = {
    "1:1": "square_hd",
    "16:9": "landscape_16_9",
    "9:16": "portrait_16_9",
    "4:3": "landscape_4_3",
    "3:4": "portrait_4_3",
    "4:5": "portrait_4_3",
    "5:7": "portrait_16_9",
    "3:2": "landscape_4_3",
    "2:3": "portrait_4_3",
    "10:16": "portrait_16_9",
    "16:10": "landscape_16_9",
    "1:3": "portrait_16_9",
    "3:1": "landscape_16_9",
}


class FalAdapter(ProviderAdapter):
    """Base for fal.ai models; subclasses set ``model_path`` and build the input."""

    model_path: str = ""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://fal.run",
        timeout_seconds: float = 120.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds, client=client)
        self._api_key = api_key.strip()
        self._base_url = base_url.rstrip("/")

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return bool(settings.fal_key.strip())

    @classmethod
    def from_settings(cls, settings: Settings, *, client: Optional[httpx.Client] = None) -> "FalAdapter":
        return cls(
            api_key=settings.fal_key,
            base_url=settings.fal_base_url,
            timeout_seconds=settings.provider_request_timeout_seconds,
            client=client,
        )

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ImageProviderError("fal_key_missing")
        return {"Authorization": f"Key {self._api_key}", "Content-Type": "application/json"}

    def _endpoint(self) -> str:
        return f"{self._base_url}/{self.model_path}"

    def image_size_for(self, request: GenerationRequest, settings: EffectiveSettings) -> str:
        override = getattr(settings.options, "image_size", None)
        if override:
            return override
        return self.capabilities.size_labels.get(request.aspect_ratio, "square_hd")

    @abstractmethod
    def build_input(
        self,
        request: GenerationRequest,
        settings: EffectiveSettings,
        *,
        seed: Optional[int],
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def generate(
        self,
        request: GenerationRequest,
        settings: EffectiveSettings,
        *,
        seed: Optional[int],
    ) -> GenerationResponse:
        started = time.perf_counter()
        payload = self.build_input(request, settings, seed=seed)
        response = self._post(self._endpoint(), headers=self._headers(), json=payload)
        body = self._json(response)

        images = body.get("images")
        if not isinstance(images, list) or not images or not isinstance(images[0], dict):
            raise ImageProviderError(f"{self._error_prefix}_no_images_returned")
        first = images[0]
        reference = str(first.get("url") or "").strip()
        if not reference:
            raise ImageProviderError(f"{self._error_prefix}_image_url_missing")
        default_mime_type = str(first.get("content_type") or "image/png")
        image_bytes, mime_type = self._image_from_reference(reference, default_mime_type=default_mime_type)

        extra_urls = [
            str(image.get("url"))
            for image in images[1:]
            if isinstance(image, dict) and str(image.get("url") or "").startswith("http")
        ]
        provider_data: Dict[str, Any] = {
            "model": self.model_path,
            "image_size": payload.get("image_size"),
            "returned_seed": body.get("seed"),
            "has_nsfw_concepts": body.get("has_nsfw_concepts"),
        }
        if extra_urls:
            provider_data["additional_image_urls"] = extra_urls
        if not reference.startswith("data:"):
            provider_data["image_url"] = reference

        width = first.get("width")
        height = first.get("height")
        return self._response(
            request,
            image_bytes=image_bytes,
            mime_type=mime_type,
            started=started,
            seed=seed,
            width=width if isinstance(width, int) else None,
            height=height if isinstance(height, int) else None,
            provider_data=provider_data,
        )

    def probe(self, *, timeout_seconds: float = 5.0) -> None:
        self._probe_get(self._endpoint(), headers=self._headers(), timeout_seconds=timeout_seconds)
