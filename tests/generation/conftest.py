from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from eventcanvas.core.config import Settings
from eventcanvas.generation.health import InMemoryHealthCache
from eventcanvas.generation.registry import ProviderRegistry
from eventcanvas.generation.types import EffectiveSettings, GenerationRequest, GenerationResponse, empty_options
from eventcanvas.providers import PROVIDER_ADAPTERS, ProviderAdapter
from eventcanvas.storage.db import Base, load_models


PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


class FakeRedis:
    def __init__(self) -> None:
        self._store: Dict[str, str] = {}
        self.expirations: Dict[str, int | None] = {}

    def set(self, key: str, value: str, nx: bool = False, ex: int | None = None):
        if nx and key in self._store:
            return False
        self._store[key] = str(value)
        self.expirations[key] = ex
        return True

    def get(self, key: str):
        return self._store.get(key)

    def delete(self, key: str):
        return 1 if self._store.pop(key, None) is not None else 0

    def keys(self, pattern: str):
        if "*" not in pattern:
            return [pattern] if pattern in self._store else []
        prefix = pattern.split("*", 1)[0]
        return [key for key in self._store if key.startswith(prefix)]


class BrokenRedis:
    def get(self, key: str):
        raise ConnectionError("redis down")

    def set(self, key: str, value: str, nx: bool = False, ex: int | None = None):
        raise ConnectionError("redis down")

    def keys(self, pattern: str):
        raise ConnectionError("redis down")


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeAdapter(ProviderAdapter):
    """Scripted adapter reusing a real provider's capabilities."""

    def __init__(
        self,
        provider_id: str,
        *,
        healthy: bool = True,
        fail_with: Optional[BaseException] = None,
    ) -> None:
        super().__init__()
        self.provider_id = provider_id
        self.capabilities = PROVIDER_ADAPTERS[provider_id].capabilities
        self.healthy = healthy
        self.fail_with = fail_with
        self.probe_calls = 0
        self.generate_calls: list[Optional[int]] = []

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return True

    @classmethod
    def from_settings(cls, settings: Settings, *, client: Optional[httpx.Client] = None) -> "FakeAdapter":
        raise NotImplementedError

    def probe(self, *, timeout_seconds: float = 5.0) -> None:
        self.probe_calls += 1
        if not self.healthy:
            raise httpx.ConnectError("connection refused")

    def generate(
        self,
        request: GenerationRequest,
        settings: EffectiveSettings,
        *,
        seed: Optional[int],
    ) -> GenerationResponse:
        self.generate_calls.append(seed)
        if self.fail_with is not None:
            raise self.fail_with
        return GenerationResponse(
            image_data=PNG_BYTES,
            provider=self.provider_id,
            mime_type="image/png",
            cost=0.0,
            generation_time_ms=12,
            seed=seed,
            width=1024,
            height=1024,
        )


@dataclass
class RegistryContext:
    registry: ProviderRegistry
    adapters: Dict[str, FakeAdapter]
    cache: Any
    clock: FakeClock
    settings: Settings = field(repr=False)


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "database_url": "sqlite+pysqlite://",
        "provider_health_cache_backend": "memory",
        "provider_admin_api_key": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_registry(
    providers: Iterable[str],
    *,
    unhealthy: Iterable[str] = (),
    cache: Any = None,
    **setting_overrides: Any,
) -> RegistryContext:
    provider_ids = list(providers)
    unhealthy_ids = set(unhealthy)
    setting_overrides.setdefault("provider_priority_order", ",".join(provider_ids))
    settings = make_settings(**setting_overrides)
    adapters = {
        provider_id: FakeAdapter(provider_id, healthy=provider_id not in unhealthy_ids) for provider_id in provider_ids
    }
    clock = FakeClock()
    cache = cache if cache is not None else InMemoryHealthCache()
    registry = ProviderRegistry(settings=settings, cache=cache, adapters=adapters, clock=clock)
    return RegistryContext(registry=registry, adapters=adapters, cache=cache, clock=clock, settings=settings)


def build_sqlite_session_factory(database_url: str = "sqlite+pysqlite://") -> sessionmaker:
    load_models()
    if database_url == "sqlite+pysqlite://":
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    else:
        engine = create_engine(database_url, connect_args={"check_same_thread": False, "timeout": 30}, future=True)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def effective_settings(provider_id: str, **overrides: Any) -> EffectiveSettings:
    values: Dict[str, Any] = {
        "provider": provider_id,
        "options": empty_options(provider_id),
        "default_quality": PROVIDER_ADAPTERS[provider_id].capabilities.default_quality,
    }
    values.update(overrides)
    return EffectiveSettings(**values)
