from __future__ import annotations

from http import HTTPStatus

import pytest
from conftest import FakeResponse

from alias_router.core.exceptions import AccessDenied, NotFound, UnknownProviderError
from alias_router.vault.keys import KeyLimits

USER_ID = 1
WORKSPACE_ID = 10


async def _add_openai_key(services, http_stub, *, valid=True, **kwargs):
    if valid:
        http_stub.queue(FakeResponse(HTTPStatus.OK, {"data": []}))
    else:
        http_stub.queue(
            FakeResponse(HTTPStatus.UNAUTHORIZED, {"error": {"message": "Incorrect API key"}})
        )
    return await services.vault.add_key(
        USER_ID, WORKSPACE_ID, "openai", "Primary", "sk-test-abcd1234", **kwargs
    )


@pytest.mark.asyncio
async def test_add_key_verifies_encrypts_and_logs(services, http_stub):
    key = await _add_openai_key(services, http_stub, limits=KeyLimits(budget_limit_usd=50))

    assert key.status == "active"
    assert key.key_last_four == "1234"
    assert "sk-test" not in key.encrypted_api_key
    assert services.vault.decrypt(key) == "sk-test-abcd1234"
    assert key.scopes == {"text": True, "image": False, "audio": False, "video": False}
    assert key.rate_limit_per_minute == 60
    assert http_stub.calls[0]["url"] == "https://api.openai.com/v1/models"
    assert http_stub.calls[0]["headers"]["Authorization"] == "Bearer sk-test-abcd1234"

    budget = services.ledger.get_budget(key.id)
    assert budget.budget_limit_usd == 50

    rows = services.store.find_many("ai_call_logs", {"capability": "verification"})
    assert len(rows) == 1
    assert rows[0].status == "success"
    assert rows[0].model_name == "key-verification"
    assert rows[0].request_id.startswith("verify_")


@pytest.mark.asyncio
async def test_failed_verification_stores_invalid_key(services, http_stub):
    key = await _add_openai_key(services, http_stub, valid=False)

    assert key.status == "invalid"
    assert "HTTP 401" in key.verification_error
    assert "Incorrect API key" in key.verification_error
    assert services.vault.find_active_key(WORKSPACE_ID, "openai") is None

    row = services.store.find_one("ai_call_logs", {"capability": "verification"})
    assert row.status == "error"


@pytest.mark.asyncio
async def test_add_key_for_unregistered_provider_fails(services, http_stub):
    with pytest.raises(UnknownProviderError):
        await services.vault.add_key(USER_ID, WORKSPACE_ID, "stability", "x", "sk-0000")

    assert http_stub.calls == []


@pytest.mark.asyncio
async def test_list_keys_masks_secret(services, http_stub):
    await _add_openai_key(services, http_stub)

    keys = services.vault.list_keys(USER_ID, WORKSPACE_ID)

    assert len(keys) == 1
    listed = keys[0]
    assert listed["api_key_preview"] == "••••1234"
    assert listed["is_verified"] is True
    assert "encrypted_api_key" not in listed
    assert listed["budget"]["status"] == "no_limit"


@pytest.mark.asyncio
async def test_revoke_checks_ownership(services, http_stub):
    key = await _add_openai_key(services, http_stub)

    with pytest.raises(NotFound):
        services.vault.revoke_key(key.id + 100, USER_ID)
    with pytest.raises(AccessDenied):
        services.vault.revoke_key(key.id, USER_ID + 1)

    revoked = services.vault.revoke_key(key.id, USER_ID)

    assert revoked.status == "inactive"
    assert services.vault.find_active_key(WORKSPACE_ID, "openai") is None
    kinds = [event["kind"] for event in services.events.list_recent()]
    assert "key_revoked" in kinds


@pytest.mark.asyncio
async def test_reverify_updates_status_but_keeps_revoked_keys_revoked(services, http_stub):
    key = await _add_openai_key(services, http_stub, valid=False)

    http_stub.queue(FakeResponse(HTTPStatus.OK, {"data": []}))
    key = await services.vault.verify_key(key.id, USER_ID)
    assert key.status == "active"
    assert key.verification_error is None

    services.vault.revoke_key(key.id, USER_ID)
    http_stub.queue(FakeResponse(HTTPStatus.OK, {"data": []}))
    key = await services.vault.verify_key(key.id, USER_ID)
    assert key.status == "inactive"
