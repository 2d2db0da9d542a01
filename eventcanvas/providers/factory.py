"""Registry table mapping provider identifiers to adapter classes."""

from __future__ import annotations

from typing import Dict, Optional, Type

import httpx

from eventcanvas.core.config import Settings
from eventcanvas.providers.base import ProviderAdapter
from eventcanvas.providers.fal_ideogram import FalIdeogramAdapter
from eventcanvas.providers.fal_qwen import FalQwenAdapter
from eventcanvas.providers.huggingface import HuggingFaceAdapter
from eventcanvas.providers.ideogram import IdeogramAdapter
from eventcanvas.providers.midjourney import MidjourneyAdapter
from eventcanvas.providers.qwen import QwenAdapter
from eventcanvas.providers.stability import StabilityAdapter


PROVIDER_ADAPTERS: Dict[str, Type[ProviderAdapter]] = {
    "ideogram": IdeogramAdapter,
    "huggingface": HuggingFaceAdapter,
    "stability": StabilityAdapter,
    "midjourney": MidjourneyAdapter,
    "qwen": QwenAdapter,
    "fal-qwen": FalQwenAdapter,
    "fal-ideogram": FalIdeogramAdapter,
}


def adapter_class(provider_id: str) -> Type[ProviderAdapter]:
    try:
        return PROVIDER_ADAPTERS[provider_id]
    except KeyError as exc:
        raise KeyError(f"unknown_provider provider={provider_id}") from exc


def build_adapter(
    provider_id: str,
    settings: Settings,
    *,
    client: Optional[httpx.Client] = None,
) -> ProviderAdapter:
    return adapter_class(provider_id).from_settings(settings, client=client)
