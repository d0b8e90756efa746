"""Provider key storage, verification and lifecycle."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from alias_router.core.exceptions import AccessDenied, NotFound, UnknownProviderError
from alias_router.router.ledger import BudgetLedger
from alias_router.router.registry import ProviderRegistry
from alias_router.storage.database import Datastore
from alias_router.storage.models import ProviderKey
from alias_router.telemetry.call_log import CallLogWriter
from alias_router.telemetry.events import EventLog

from .cipher import KeyCipher

logger = logging.getLogger("alias_router.vault")

KEYS = ProviderKey.__tablename__
KEY_STATUSES = ("active", "inactive", "invalid", "expired", "rotating")
DEFAULT_RATE_LIMIT_PER_MINUTE = 60


def default_scopes() -> Dict[str, bool]:
    return {"text": True, "image": False, "audio": False, "video": False}


class KeyLimits(BaseModel):
    budget_limit_usd: float | None = Field(default=None, ge=0)
    token_limit: int | None = Field(default=None, ge=0)
    request_limit: int | None = Field(default=None, ge=0)
    rate_limit_per_minute: int | None = Field(default=DEFAULT_RATE_LIMIT_PER_MINUTE, ge=1)


class CredentialVault:
    """Encrypted provider credentials scoped to a workspace.

    Plaintext keys only exist transiently: they are verified, encrypted and
    stored, and afterwards surface solely through :meth:`decrypt` for the
    routing engine. Listing returns the last four characters.
    """

    def __init__(
        self,
        store: Datastore,
        cipher: KeyCipher,
        registry: ProviderRegistry,
        ledger: BudgetLedger,
        call_log: CallLogWriter,
        events: EventLog | None = None,
    ) -> None:
        self._store = store
        self._cipher = cipher
        self._registry = registry
        self._ledger = ledger
        self._call_log = call_log
        self._events = events

    async def add_key(
        self,
        user_id: int,
        workspace_id: int,
        provider: str,
        label: str,
        api_key: str,
        *,
        scopes: Dict[str, bool] | None = None,
        limits: KeyLimits | None = None,
        data_residency: str = "global",
        zero_retention_mode: bool = False,
    ) -> ProviderKey:
        """Verify, encrypt and store a key. A failed probe stores it as ``invalid``."""
        if not self._registry.has(provider):
            raise UnknownProviderError(provider)
        limits = limits or KeyLimits()
        encrypted = self._cipher.encrypt(api_key)

        verification = await self._registry.get_adapter(provider).verify_key(api_key)
        now = datetime.now(timezone.utc)
        key = self._store.create(
            KEYS,
            {
                "user_id": user_id,
                "workspace_id": workspace_id,
                "provider_name": provider,
                "key_label": label,
                "encrypted_api_key": encrypted,
                "key_last_four": api_key[-4:],
                "scopes": {**default_scopes(), **(scopes or {})},
                "status": "active" if verification.valid else "invalid",
                "last_verified_at": now,
                "verification_error": verification.error,
                "rate_limit_per_minute": limits.rate_limit_per_minute,
                "data_residency": data_residency,
                "zero_retention_mode": zero_retention_mode,
            },
        )
        self._ledger.open_budget(
            key.id,
            budget_limit_usd=limits.budget_limit_usd,
            token_limit=limits.token_limit,
            request_limit=limits.request_limit,
        )

        self._call_log.record(
            user_id=user_id,
            workspace_id=workspace_id,
            alias_name="system",
            provider_name=provider,
            model_name="key-verification",
            modality="text",
            capability="verification",
            request_id=f"verify_{uuid.uuid4().hex}",
            status="success" if verification.valid else "error",
            error_message=verification.error,
            provider_of_record=provider,
            request_metadata={"action": "key_added", "label": label},
            response_metadata={"verified": verification.valid},
        )
        logger.info(
            "Provider key added",
            extra={
                "event": "key_added",
                "provider": provider,
                "key_id": key.id,
                "verified": verification.valid,
            },
        )
        self._record_event(
            "key_verified",
            "INFO" if verification.valid else "WARNING",
            provider,
            message=verification.error or "Key verified",
            meta={"key_id": key.id, "valid": verification.valid},
        )
        return key

    def list_keys(self, user_id: int, workspace_id: int) -> List[Dict[str, Any]]:
        rows = self._store.find_many(
            KEYS,
            {"user_id": user_id, "workspace_id": workspace_id},
            order_by="created_at",
            descending=True,
        )
        return [self._masked(row) for row in rows]

    def get_key(self, key_id: int, caller_user_id: int) -> ProviderKey:
        key = self._store.find_by_id(KEYS, key_id)
        if key is None:
            raise NotFound(f"Provider key {key_id} not found")
        if key.user_id != caller_user_id:
            raise AccessDenied("Access denied")
        return key

    def revoke_key(self, key_id: int, caller_user_id: int) -> ProviderKey:
        key = self.get_key(key_id, caller_user_id)
        key = self._store.update(KEYS, key.id, {"status": "inactive"})
        logger.info(
            "Provider key revoked",
            extra={"event": "key_revoked", "provider": key.provider_name, "key_id": key.id},
        )
        self._record_event(
            "key_revoked", "INFO", key.provider_name, message="Key revoked", meta={"key_id": key.id}
        )
        return key

    async def verify_key(self, key_id: int, caller_user_id: int) -> ProviderKey:
        """Re-run the provider probe on a stored key and record the outcome."""
        key = self.get_key(key_id, caller_user_id)
        api_key = self.decrypt(key)
        verification = await self._registry.get_adapter(key.provider_name).verify_key(api_key)

        values: Dict[str, Any] = {
            "last_verified_at": datetime.now(timezone.utc),
            "verification_error": verification.error,
        }
        # Revoked keys stay revoked whatever the probe says.
        if key.status != "inactive":
            values["status"] = "active" if verification.valid else "invalid"
        key = self._store.update(KEYS, key.id, values)
        self._record_event(
            "key_verified",
            "INFO" if verification.valid else "WARNING",
            key.provider_name,
            message=verification.error or "Key verified",
            meta={"key_id": key.id, "valid": verification.valid},
        )
        return key

    def find_active_key(self, workspace_id: int, provider: str) -> ProviderKey | None:
        return self._store.find_one(
            KEYS,
            {"workspace_id": workspace_id, "provider_name": provider, "status": "active"},
        )

    def decrypt(self, key: ProviderKey) -> str:
        return self._cipher.decrypt(key.encrypted_api_key)

    def _masked(self, key: ProviderKey) -> Dict[str, Any]:
        budget = self._ledger.check_budget(key.id)
        return {
            "id": key.id,
            "provider_name": key.provider_name,
            "key_label": key.key_label,
            "api_key_preview": f"••••{key.key_last_four}",
            "scopes": key.scopes,
            "status": key.status,
            "is_verified": key.status == "active" and key.last_verified_at is not None,
            "last_verified_at": key.last_verified_at.isoformat() if key.last_verified_at else None,
            "verification_error": key.verification_error,
            "rate_limit_per_minute": key.rate_limit_per_minute,
            "data_residency": key.data_residency,
            "zero_retention_mode": key.zero_retention_mode,
            "budget": budget.model_dump(),
            "created_at": key.created_at.isoformat() if key.created_at else None,
        }

    def _record_event(self, kind: str, level: str, provider: str, **kwargs: Any) -> None:
        if self._events is not None:
            self._events.record(kind, level, provider_from=provider, **kwargs)


__all__ = ["CredentialVault", "KeyLimits", "KEY_STATUSES", "default_scopes"]
