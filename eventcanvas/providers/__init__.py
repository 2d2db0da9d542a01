"""Image provider adapters and the identifier-to-adapter table."""

from eventcanvas.providers.base import ProviderAdapter
from eventcanvas.providers.factory import PROVIDER_ADAPTERS, adapter_class, build_adapter

__all__ = ["PROVIDER_ADAPTERS", "ProviderAdapter", "adapter_class", "build_adapter"]
