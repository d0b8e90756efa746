from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from alias_router.main import create_app
from alias_router.providers.base import ProviderAdapter, VerificationResult
from alias_router.router.registry import ProviderRegistry

HEADERS = {"x-user-id": "1", "x-workspace-id": "10"}
OTHER_USER = {"x-user-id": "2", "x-workspace-id": "10"}


class _DummyAdapter(ProviderAdapter):
    async def verify_key(self, api_key: str) -> VerificationResult:
        if api_key.endswith("bad"):
            return VerificationResult(valid=False, error="Invalid API key")
        return VerificationResult(valid=True)


@pytest.fixture
def client(monkeypatch, settings, catalog):
    monkeypatch.setattr(
        ProviderRegistry,
        "_adapter_map",
        {
            key: _DummyAdapter
            for key in ("anthropic", "gemini", "openai", "openai_compatible", "replicate")
        },
    )
    with TestClient(create_app(settings, catalog)) as test_client:
        yield test_client


def _add_key(client, provider="openai", api_key="sk-test-9876", **extra):
    body = {"provider": provider, "label": "Main", "api_key": api_key, **extra}
    return client.post("/admin/keys", json=body, headers=HEADERS)


def test_list_providers_exposes_tiers(client):
    response = client.get("/admin/providers")

    assert response.status_code == 200
    providers = {item["id"]: item for item in response.json()["providers"]}
    assert providers["openrouter"]["is_aggregator"] is True
    assert providers["openai"]["tier"] == 1
    assert providers["replicate"]["supported_modalities"] == ["image", "video"]


def test_add_and_list_keys_never_leak_secret(client):
    response = _add_key(client, limits={"budget_limit_usd": 25})

    assert response.status_code == 201
    key = response.json()["key"]
    assert key["status"] == "active"
    assert key["api_key_preview"] == "••••9876"

    listed = client.get("/admin/keys", headers=HEADERS).json()["keys"]
    assert len(listed) == 1
    assert listed[0]["budget"]["limit_usd"] == 25
    assert "sk-test-9876" not in str(listed)


def test_add_key_with_failed_verification_is_stored_invalid(client):
    key = _add_key(client, api_key="sk-bad").json()["key"]

    assert key["status"] == "invalid"
    assert key["verification_error"] == "Invalid API key"


def test_add_key_for_unknown_provider_is_rejected(client):
    response = _add_key(client, provider="stability")

    assert response.status_code == 400
    assert response.json() == {
        "error": {
            "message": "No adapter registered for provider 'stability'",
            "type": "UnknownProviderError",
            "code": "configuration_error",
        }
    }


def test_revoke_and_verify_enforce_ownership(client):
    key_id = _add_key(client).json()["key"]["id"]

    assert client.delete(f"/admin/keys/{key_id}", headers=OTHER_USER).status_code == 403
    assert client.delete("/admin/keys/999", headers=HEADERS).status_code == 404
    assert client.post(f"/admin/keys/{key_id}/verify", headers=OTHER_USER).status_code == 403

    revoked = client.delete(f"/admin/keys/{key_id}", headers=HEADERS)
    assert revoked.json()["key"]["status"] == "inactive"

    reverified = client.post(f"/admin/keys/{key_id}/verify", headers=HEADERS)
    assert reverified.status_code == 200
    assert reverified.json()["key"]["status"] == "inactive"


def test_alias_lifecycle(client):
    created = client.post("/admin/aliases/defaults", headers=HEADERS).json()["created"]
    assert {alias["alias_name"] for alias in created} == {
        "default-writer",
        "fast-drafts",
        "image-hero",
    }

    body = {
        "alias_name": "summaries",
        "modality": "text",
        "capability": "chat",
        "primary_provider": "anthropic",
        "primary_model": "claude-3-5-sonnet-20241022",
        "fallback_chain": [{"provider": "mistral", "model": "mistral-large", "priority": 1}],
        "routing_preference": "cost",
    }
    response = client.post("/admin/aliases", json=body, headers=HEADERS)
    assert response.status_code == 201
    alias = response.json()["alias"]
    assert alias["display_name"] == "summaries"

    patched = client.patch(
        f"/admin/aliases/{alias['id']}", json={"primary_model": "claude-3-haiku"}, headers=HEADERS
    )
    assert patched.json()["alias"]["primary_model"] == "claude-3-haiku"

    assert client.delete(f"/admin/aliases/{alias['id']}", headers=OTHER_USER).status_code == 403
    assert client.delete(f"/admin/aliases/{alias['id']}", headers=HEADERS).status_code == 200

    listed = client.get("/admin/aliases", headers=HEADERS).json()["aliases"]
    names = [item["alias_name"] for item in listed]
    assert "summaries" not in names
    assert len(names) == 3


def test_invalid_alias_returns_400(client):
    body = {
        "alias_name": "broken",
        "modality": "audio",
        "capability": "chat",
        "primary_provider": "openai",
        "primary_model": "whisper-1",
    }

    response = client.post("/admin/aliases", json=body, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_alias"


def test_usage_and_events_endpoints(client):
    _add_key(client)

    usage = client.get("/admin/usage?timeframe=day", headers=HEADERS).json()
    assert usage["timeframe"] == "day"
    assert usage["by_alias"]["system"]["calls"] == 1

    events = client.get("/admin/events?limit=500").json()["events"]
    assert any(event["kind"] == "key_verified" for event in events)


def test_missing_identity_headers_are_rejected(client):
    assert client.get("/admin/keys").status_code == 422


def test_patch_alias_with_nulls_keeps_existing_values(client):
    created = client.post("/admin/aliases/defaults", headers=HEADERS).json()["created"]
    writer = next(alias for alias in created if alias["alias_name"] == "default-writer")

    response = client.patch(
        f"/admin/aliases/{writer['id']}",
        json={"primary_model": None, "primary_provider": None, "allow_aggregators": None},
        headers=HEADERS,
    )

    assert response.status_code == 200
    alias = response.json()["alias"]
    assert alias["primary_provider"] == "openai"
    assert alias["primary_model"] == "gpt-4"
    assert alias["allow_aggregators"] is False
