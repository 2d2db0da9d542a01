from __future__ import annotations

import base64

from fastapi.testclient import TestClient
import httpx
import pytest

import eventcanvas.api.main as api_main
from eventcanvas.core.config import get_settings
from eventcanvas.generation.registry import get_provider_registry
from eventcanvas.schemas.generation import ErrorResponse
from eventcanvas.storage.db import get_session
from tests.generation.conftest import PNG_BYTES, build_sqlite_session_factory, make_registry


ADMIN_HEADERS = {"X-EventCanvas-Admin-Key": "admin-secret", "X-EventCanvas-Actor-Id": "admin-7"}


@pytest.fixture
def api_context(monkeypatch):
    monkeypatch.setattr(get_settings(), "provider_admin_api_key", "admin-secret")
    session_factory = build_sqlite_session_factory()
    context = make_registry(["ideogram", "stability", "fal-qwen"], unhealthy=["ideogram"])

    def override_get_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    api_main.app.dependency_overrides[get_session] = override_get_session
    api_main.app.dependency_overrides[get_provider_registry] = lambda: context.registry
    try:
        yield TestClient(api_main.app), context
    finally:
        api_main.app.dependency_overrides.clear()


def test_list_providers(api_context) -> None:
    client, _ = api_context
    response = client.get("/providers")

    assert response.status_code == 200
    payload = response.json()
    assert payload["providers"] == ["ideogram", "stability", "fal-qwen"]
    assert len(payload["priority_order"]) == 7


def test_providers_health(api_context) -> None:
    client, _ = api_context
    response = client.get("/providers/health")

    assert response.status_code == 200
    providers = response.json()["providers"]
    assert providers["stability"]["healthy"] is True
    assert providers["ideogram"]["healthy"] is False
    assert providers["midjourney"]["available"] is False


def test_provider_capabilities(api_context) -> None:
    client, _ = api_context
    response = client.get("/providers/fal-qwen/capabilities")

    assert response.status_code == 200
    payload = response.json()
    assert payload["provider"] == "fal-qwen"
    assert payload["cost_per_megapixel"] == 0.05
    assert payload["guidance_scale"] == {"min": 0.0, "max": 20.0, "default": 2.5}

    unknown = client.get("/providers/dall-e/capabilities")
    assert unknown.status_code == 400
    assert unknown.json()["code"] == "INVALID_PARAMETERS"


def test_generate_returns_base64_image(api_context) -> None:
    client, context = api_context
    response = client.post("/images/generate", json={"prompt": "Birthday bash", "user_id": "user-42"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["provider"] == "stability"
    assert base64.b64decode(payload["image_base64"]) == PNG_BYTES
    assert payload["seed"] == 178231
    assert payload["cost"] == pytest.approx(0.03)
    assert context.adapters["stability"].generate_calls == [178231]


@pytest.mark.parametrize(
    ("body", "expected_status", "expected_code"),
    [
        ({"preferred_provider": "ideogram"}, 503, "SERVICE_UNAVAILABLE"),
        ({"preferred_provider": "dall-e"}, 400, "INVALID_PARAMETERS"),
        ({"preferred_provider": "stability", "aspect_ratio": "4:3"}, 400, "INVALID_PARAMETERS"),
        ({"max_cost": 0.001}, 402, "INSUFFICIENT_CREDITS"),
    ],
)
def test_generate_maps_classified_errors(api_context, body, expected_status, expected_code) -> None:
    client, _ = api_context
    response = client.post("/images/generate", json={"prompt": "Birthday bash", "user_id": "user-42", **body})

    assert response.status_code == expected_status
    payload = response.json()
    assert payload["code"] == expected_code
    assert set(payload) == {"code", "provider", "detail"}
    assert ErrorResponse.model_validate(payload).code == expected_code


def test_openapi_documents_classified_error_bodies(api_context) -> None:
    client, _ = api_context
    schema = client.get("/openapi.json").json()

    generate_responses = schema["paths"]["/images/generate"]["post"]["responses"]
    for status_code in ("400", "402", "429", "502", "503"):
        content = generate_responses[status_code]["content"]["application/json"]["schema"]
        assert content == {"$ref": "#/components/schemas/ErrorResponse"}
    assert {"code", "detail"} <= set(schema["components"]["schemas"]["ErrorResponse"]["required"])


@pytest.mark.parametrize(
    ("failure", "expected_status", "expected_code"),
    [
        (httpx.ReadTimeout("read timed out"), 503, "SERVICE_UNAVAILABLE"),
        (RuntimeError("boom"), 502, "UNKNOWN"),
    ],
)
def test_generate_maps_provider_failures(api_context, failure, expected_status, expected_code) -> None:
    client, context = api_context
    context.adapters["stability"].fail_with = failure

    response = client.post("/images/generate", json={"prompt": "Birthday bash", "user_id": "user-42"})

    assert response.status_code == expected_status
    assert response.json()["code"] == expected_code
    assert response.json()["provider"] == "stability"


def test_generate_rejects_malformed_requests(api_context) -> None:
    client, _ = api_context
    response = client.post(
        "/images/generate",
        json={"prompt": "Birthday bash", "user_id": "user-42", "provider_options": {"provider": "dall-e"}},
    )
    assert response.status_code == 422


def test_estimate_cost(api_context) -> None:
    client, _ = api_context
    response = client.post(
        "/images/estimate",
        json={"prompt": "Birthday bash", "user_id": "user-42", "provider": "fal-qwen", "aspect_ratio": "16:9"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["cost"] == pytest.approx(0.029491)
    assert payload["quality"] == "standard"
    assert payload["max_daily_cost"] is None


def test_estimate_reports_profile_daily_budget(api_context) -> None:
    client, _ = api_context
    created = client.post(
        "/admin/provider-settings",
        headers=ADMIN_HEADERS,
        json={
            "provider_id": "fal-qwen",
            "name": "weekday",
            "is_default": True,
            "base_settings": {"max_daily_cost": 2.5},
        },
    )
    assert created.status_code == 200

    response = client.post(
        "/images/estimate",
        json={"prompt": "Birthday bash", "user_id": "user-42", "provider": "fal-qwen"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["max_daily_cost"] == pytest.approx(2.5)
    assert payload["profile_id"] == created.json()["id"]


def test_admin_routes_require_the_admin_key(api_context, monkeypatch) -> None:
    client, _ = api_context

    missing = client.get("/admin/provider-settings")
    assert missing.status_code == 403
    assert missing.json()["detail"] == "invalid_provider_admin_key"

    wrong = client.get("/admin/provider-settings", headers={"X-EventCanvas-Admin-Key": "nope"})
    assert wrong.status_code == 403

    monkeypatch.setattr(get_settings(), "provider_admin_api_key", "")
    misconfigured = client.get("/admin/provider-settings", headers=ADMIN_HEADERS)
    assert misconfigured.status_code == 503
    assert misconfigured.json()["detail"] == "provider_admin_api_misconfigured"


def test_admin_profile_lifecycle(api_context) -> None:
    client, _ = api_context

    created = client.post(
        "/admin/provider-settings",
        headers=ADMIN_HEADERS,
        json={
            "provider_id": "fal-qwen",
            "name": "launch",
            "is_default": True,
            "base_settings": {"default_quality": "high"},
            "specific_settings": {"negative_prompt": "watermark"},
        },
    )
    assert created.status_code == 200
    profile = created.json()
    assert profile["version"] == 1
    assert profile["created_by"] == "admin-7"
    assert profile["specific_settings"] == {"negative_prompt": "watermark"}

    spare = client.post(
        "/admin/provider-settings",
        headers=ADMIN_HEADERS,
        json={"provider_id": "fal-qwen", "name": "spare"},
    )
    assert spare.status_code == 200

    stale = client.post(
        "/admin/provider-settings",
        headers=ADMIN_HEADERS,
        json={"id": profile["id"], "provider_id": "fal-qwen", "name": "launch", "expected_version": 4},
    )
    assert stale.status_code == 409

    listing = client.get("/admin/provider-settings", headers=ADMIN_HEADERS, params={"provider_id": "fal-qwen"})
    assert listing.status_code == 200
    assert [item["name"] for item in listing.json()["items"]] == ["launch", "spare"]

    blocked = client.delete(f"/admin/provider-settings/{profile['id']}", headers=ADMIN_HEADERS)
    assert blocked.status_code == 409

    deleted = client.delete(f"/admin/provider-settings/{spare.json()['id']}", headers=ADMIN_HEADERS)
    assert deleted.status_code == 204

    missing = client.delete("/admin/provider-settings/unknown-id", headers=ADMIN_HEADERS)
    assert missing.status_code == 404


def test_admin_rejects_invalid_profile_payloads(api_context) -> None:
    client, _ = api_context
    response = client.post(
        "/admin/provider-settings",
        headers=ADMIN_HEADERS,
        json={"provider_id": "fal-qwen", "name": "bad", "specific_settings": {"rendering_speed": "TURBO"}},
    )
    assert response.status_code == 422


def test_request_id_header_is_echoed(api_context) -> None:
    client, _ = api_context
    response = client.get("/providers", headers={"x-request-id": "req-123"})
    assert response.headers["x-request-id"] == "req-123"
