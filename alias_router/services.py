"""Explicitly constructed service graph owned by the process entry point."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from alias_router.core.config import AppConfig, Settings, load_config
from alias_router.router.aliases import AliasResolver
from alias_router.router.engine import RoutingEngine
from alias_router.router.ledger import BudgetLedger
from alias_router.router.registry import ProviderRegistry
from alias_router.storage.database import Datastore
from alias_router.telemetry.call_log import CallLogWriter
from alias_router.telemetry.events import EventLog
from alias_router.vault.cipher import KeyCipher
from alias_router.vault.keys import CredentialVault

logger = logging.getLogger("alias_router.services")


@dataclass
class Services:
    settings: Settings
    catalog: AppConfig
    store: Datastore
    registry: ProviderRegistry
    ledger: BudgetLedger
    call_log: CallLogWriter
    events: EventLog
    vault: CredentialVault
    aliases: AliasResolver
    engine: RoutingEngine

    @classmethod
    def build(cls, settings: Settings, catalog: AppConfig | None = None) -> "Services":
        catalog = catalog or load_config(settings.config_path)
        store = Datastore(settings.database_url)
        store.init_db()

        registry = ProviderRegistry(catalog, settings=settings)
        ledger = BudgetLedger(store)
        call_log = CallLogWriter(store)
        events = EventLog(store, enabled=settings.events_enabled)
        vault = CredentialVault(
            store, KeyCipher(settings.encryption_key), registry, ledger, call_log, events
        )
        aliases = AliasResolver(store, registry)
        engine = RoutingEngine(
            aliases=aliases,
            vault=vault,
            ledger=ledger,
            registry=registry,
            call_log=call_log,
            events=events,
        )
        logger.info(
            "Services started",
            extra={"event": "services_started", "providers": len(catalog.providers)},
        )
        return cls(
            settings=settings,
            catalog=catalog,
            store=store,
            registry=registry,
            ledger=ledger,
            call_log=call_log,
            events=events,
            vault=vault,
            aliases=aliases,
            engine=engine,
        )

    def shutdown(self) -> None:
        self.store.dispose()
        logger.info("Services stopped", extra={"event": "services_stopped"})


__all__ = ["Services"]
