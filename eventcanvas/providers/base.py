"""Provider adapter contract shared by every image backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
import base64
import binascii
import math
import time
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from eventcanvas.core.config import Settings
from eventcanvas.generation.errors import ImageProviderError, ProviderHTTPError, invalid_parameters
from eventcanvas.generation.types import (
    EffectiveSettings,
    GenerationRequest,
    GenerationResponse,
    ProviderCapabilities,
    dimensions_for,
    megapixels_for,
    request_quality,
)


QUALITY_STEPS: Dict[str, int] = {"fast": 15, "standard": 25, "high": 35, "ultra": 50}
QUALITY_RENDERING_SPEED: Dict[str, str] = {
    "fast": "TURBO",
    "standard": "BALANCED",
    "high": "QUALITY",
    "ultra": "QUALITY",
}
RENDERING_SPEED_MULTIPLIERS: Dict[str, float] = {"TURBO": 0.5, "BALANCED": 1.0, "QUALITY": 1.5}

# Statuses that mean the endpoint answered but refused our credentials or our pace.
_PROBE_FAILURE_STATUSES = frozenset({401, 403, 429})


def truncate_detail(detail: str, limit: int = 240) -> str:
    cleaned = (detail or "").strip()
    if len(cleaned) > limit:
        return cleaned[:limit] + "..."
    return cleaned


def decode_base64_image(data: str, *, default_mime_type: str = "image/png") -> Tuple[bytes, str]:
    """Decode a data URL or bare base64 string into ``(bytes, mime_type)``."""

    cleaned = (data or "").strip()
    mime_type = default_mime_type
    if cleaned.startswith("data:") and "," in cleaned:
        header, cleaned = cleaned.split(",", 1)
        declared = header[len("data:"):].split(";", 1)[0].strip()
        if declared:
            mime_type = declared
    if not cleaned:
        raise ImageProviderError("image_payload_empty")
    try:
        return base64.b64decode(cleaned, validate=True), mime_type
    except (binascii.Error, ValueError) as exc:
        raise ImageProviderError("image_payload_invalid_base64") from exc


class ProviderAdapter(ABC):
    """Uniform contract over one third-party image backend.

    ``get_capabilities``, ``validate_params`` and ``estimate_cost`` never touch
    the network. ``generate`` performs exactly one generation call (plus a
    download when the provider answers with a URL).
    """

    provider_id: str = ""
    capabilities: ProviderCapabilities

    def __init__(
        self,
        *,
        timeout_seconds: float = 120.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._timeout_seconds = max(1.0, float(timeout_seconds))
        self._client = client

    @classmethod
    @abstractmethod
    def is_configured(cls, settings: Settings) -> bool:
        raise NotImplementedError

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Settings, *, client: Optional[httpx.Client] = None) -> "ProviderAdapter":
        raise NotImplementedError

    @abstractmethod
    def generate(
        self,
        request: GenerationRequest,
        settings: EffectiveSettings,
        *,
        seed: Optional[int],
    ) -> GenerationResponse:
        raise NotImplementedError

    @abstractmethod
    def probe(self, *, timeout_seconds: float = 5.0) -> None:
        """Raise when the provider is unreachable or rejects our credentials."""

        raise NotImplementedError

    def get_capabilities(self) -> ProviderCapabilities:
        return self.capabilities

    # Parameter resolution

    def quality_for(self, request: GenerationRequest, settings: EffectiveSettings) -> str:
        return request_quality(request, settings)

    def inference_steps_for(self, request: GenerationRequest, settings: EffectiveSettings) -> Optional[int]:
        if self.capabilities.inference_steps is None:
            return None
        if settings.inference_steps is not None:
            return settings.inference_steps
        return QUALITY_STEPS.get(self.quality_for(request, settings), int(self.capabilities.inference_steps.default))

    def guidance_scale_for(self, settings: EffectiveSettings) -> Optional[float]:
        if self.capabilities.guidance_scale is None:
            return None
        if settings.guidance_scale is not None:
            return settings.guidance_scale
        return self.capabilities.guidance_scale.default

    def num_images_for(self, settings: EffectiveSettings) -> int:
        return settings.num_images or 1

    def negative_prompt_for(self, settings: EffectiveSettings) -> Optional[str]:
        value = getattr(settings.options, "negative_prompt", None)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def cost_multiplier(self, request: GenerationRequest, settings: EffectiveSettings) -> float:
        multipliers = self.capabilities.quality_cost_multipliers
        return float(multipliers.get(self.quality_for(request, settings), 1.0))

    # Validation and pricing

    def validate_params(self, request: GenerationRequest, settings: EffectiveSettings) -> None:
        caps = self.capabilities
        provider = self.provider_id

        options = request.provider_options
        if options is not None and options.provider != provider:
            raise invalid_parameters(
                provider,
                f"provider_options_mismatch expected={provider} got={options.provider}",
            )

        prompt = (request.prompt or "").strip()
        if not prompt:
            raise invalid_parameters(provider, "prompt_empty")
        if len(request.prompt) > caps.max_prompt_length:
            raise invalid_parameters(
                provider,
                f"prompt_too_long length={len(request.prompt)} max={caps.max_prompt_length}",
            )

        quality = self.quality_for(request, settings)
        if quality not in caps.supported_qualities:
            raise invalid_parameters(provider, f"quality_unsupported quality={quality}")
        if request.aspect_ratio not in caps.supported_aspect_ratios:
            raise invalid_parameters(provider, f"aspect_ratio_unsupported aspect_ratio={request.aspect_ratio}")

        steps = self.inference_steps_for(request, settings)
        if steps is not None and caps.inference_steps is not None and not caps.inference_steps.contains(steps):
            raise invalid_parameters(
                provider,
                (
                    f"inference_steps_out_of_range value={steps} "
                    f"min={int(caps.inference_steps.min)} max={int(caps.inference_steps.max)}"
                ),
            )

        guidance = self.guidance_scale_for(settings)
        if guidance is not None and caps.guidance_scale is not None and not caps.guidance_scale.contains(guidance):
            raise invalid_parameters(
                provider,
                (
                    f"guidance_scale_out_of_range value={guidance} "
                    f"min={caps.guidance_scale.min} max={caps.guidance_scale.max}"
                ),
            )

        num_images = self.num_images_for(settings)
        if num_images < 1:
            raise invalid_parameters(provider, f"num_images_out_of_range value={num_images}")
        if num_images > 1 and not caps.supports_multiple_images:
            raise invalid_parameters(provider, "multiple_images_unsupported")
        if num_images > caps.max_images:
            raise invalid_parameters(provider, f"num_images_out_of_range value={num_images} max={caps.max_images}")

        if self.negative_prompt_for(settings) and not caps.supports_negative_prompts:
            raise invalid_parameters(provider, "negative_prompt_unsupported")
        if settings.enable_safety_checker is not None and not caps.supports_safety_checker:
            raise invalid_parameters(provider, "safety_checker_unsupported")
        if request.seed is not None and not caps.supports_seeds:
            raise invalid_parameters(provider, "seed_unsupported")

        if settings.max_cost_per_image is not None:
            per_image = self.estimate_cost(request, settings) / num_images
            if per_image > settings.max_cost_per_image:
                raise invalid_parameters(
                    provider,
                    f"cost_exceeds_profile_limit cost_per_image={per_image:.6f} limit={settings.max_cost_per_image}",
                )

    def estimate_cost(self, request: GenerationRequest, settings: EffectiveSettings) -> float:
        caps = self.capabilities
        if caps.cost_per_megapixel is not None:
            unit = megapixels_for(request.aspect_ratio) * caps.cost_per_megapixel
        else:
            unit = caps.cost_per_image or 0.0
        total = unit * self.cost_multiplier(request, settings) * max(1, self.num_images_for(settings))
        if not math.isfinite(total) or total < 0:
            return 0.0
        return round(total, 6)

    # HTTP helpers

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        kwargs.setdefault("timeout", self._timeout_seconds)
        if self._client is not None:
            return self._client.request(method, url, **kwargs)
        with httpx.Client(timeout=self._timeout_seconds) as client:
            return client.request(method, url, **kwargs)

    def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        response = self._send("POST", url, **kwargs)
        if response.status_code < 200 or response.status_code >= 300:
            raise ProviderHTTPError(self.provider_id, response.status_code, truncate_detail(response.text))
        return response

    def _json(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise ImageProviderError(f"{self._error_prefix}_invalid_json_response") from exc
        if not isinstance(body, dict):
            raise ImageProviderError(f"{self._error_prefix}_unexpected_response_shape")
        return body

    def _download(self, url: str) -> Tuple[bytes, str]:
        response = self._send("GET", url, follow_redirects=True)
        if response.status_code < 200 or response.status_code >= 300:
            raise ProviderHTTPError(self.provider_id, response.status_code, f"image_download_failed url={url}")
        if not response.content:
            raise ImageProviderError(f"{self._error_prefix}_downloaded_image_empty")
        return response.content, _content_type(response) or "image/png"

    def _image_from_reference(self, reference: str, *, default_mime_type: str = "image/png") -> Tuple[bytes, str]:
        """Resolve a URL, data URL or bare base64 reference to image bytes."""

        cleaned = (reference or "").strip()
        if cleaned.startswith("http://") or cleaned.startswith("https://"):
            return self._download(cleaned)
        return decode_base64_image(cleaned, default_mime_type=default_mime_type)

    def _binary_image(self, response: httpx.Response) -> Tuple[bytes, str]:
        content_type = _content_type(response)
        if content_type.startswith("application/json") or content_type.startswith("text/"):
            raise ImageProviderError(
                f"{self._error_prefix}_unexpected_non_image_response detail={truncate_detail(response.text)}"
            )
        if not response.content:
            raise ImageProviderError(f"{self._error_prefix}_empty_image_response")
        return response.content, content_type or "image/png"

    def _probe_get(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        response = self._send("GET", url, headers=dict(headers or {}), timeout=timeout_seconds)
        if response.status_code >= 500 or response.status_code in _PROBE_FAILURE_STATUSES:
            raise ProviderHTTPError(self.provider_id, response.status_code, truncate_detail(response.text))

    @property
    def _error_prefix(self) -> str:
        return self.provider_id.replace("-", "_")

    def _response(
        self,
        request: GenerationRequest,
        *,
        image_bytes: bytes,
        mime_type: str,
        started: float,
        seed: Optional[int],
        provider_data: Dict[str, Any],
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> GenerationResponse:
        if not image_bytes:
            raise ImageProviderError(f"{self._error_prefix}_image_missing")
        default_width, default_height = dimensions_for(request.aspect_ratio)
        return GenerationResponse(
            image_data=image_bytes,
            provider=self.provider_id,
            mime_type=mime_type or "image/png",
            cost=0.0,
            generation_time_ms=int((time.perf_counter() - started) * 1000),
            seed=seed,
            width=width if isinstance(width, int) and width > 0 else default_width,
            height=height if isinstance(height, int) and height > 0 else default_height,
            provider_data=provider_data,
        )


class RenderingSpeedMixin:
    """Ideogram-family rendering speed: an explicit option wins, else derived from quality."""

    def rendering_speed_for(self, request: GenerationRequest, settings: EffectiveSettings) -> str:
        speed = getattr(settings.options, "rendering_speed", None)
        if speed:
            return speed
        return QUALITY_RENDERING_SPEED.get(self.quality_for(request, settings), "BALANCED")


def _content_type(response: httpx.Response) -> str:
    return (response.headers.get("content-type") or "").split(";", 1)[0].strip().lower()
