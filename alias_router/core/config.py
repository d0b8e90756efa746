"""Application configuration loading utilities."""

from __future__ import annotations

import os
import pathlib
from functools import lru_cache
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR.parent / "config" / "providers.yaml"
DEFAULT_DATABASE_URL = f"sqlite:///{BASE_DIR.parent / 'data' / 'alias_router.db'}"
DEFAULT_LOG_FILE = BASE_DIR.parent / "logs" / "alias_router.jsonl"
DEV_ENCRYPTION_KEY = "alias-router-dev-encryption-key-change-in-production"


class ProviderPricing(BaseModel):
    per_1k_tokens: Dict[str, float] = Field(default_factory=dict)
    per_request: Dict[str, float] = Field(default_factory=dict)


class ProviderModel(BaseModel):
    id: str
    name: str
    adapter: str | None = None
    tier: int = Field(default=1)
    is_aggregator: bool = False
    base_url: str
    paths: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=30.0)
    supported_modalities: List[str] = Field(default_factory=lambda: ["text"])
    models: Dict[str, Any] = Field(default_factory=dict)
    pricing: ProviderPricing = Field(default_factory=ProviderPricing)
    headers: Dict[str, str] = Field(default_factory=dict)

    @property
    def adapter_key(self) -> str:
        return self.adapter or self.id

    def path(self, name: str, default: str) -> str:
        return self.paths.get(name, default)


class AppConfig(BaseModel):
    providers: List[ProviderModel]

    def get(self, provider_id: str) -> ProviderModel | None:
        return next((p for p in self.providers if p.id == provider_id), None)


class Settings(BaseModel):
    config_path: pathlib.Path = DEFAULT_CONFIG_PATH
    database_url: str = DEFAULT_DATABASE_URL
    encryption_key: str | None = None
    events_enabled: bool = True
    replicate_max_wait_seconds: float = 300.0
    replicate_poll_interval_seconds: float = 1.0
    log_level: str = "WARNING"
    log_file: pathlib.Path = DEFAULT_LOG_FILE

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            log_level=os.getenv("LOG_LEVEL", "WARNING").upper(),
            log_file=pathlib.Path(os.getenv("LOG_FILE") or DEFAULT_LOG_FILE),
            config_path=pathlib.Path(os.getenv("ALIAS_ROUTER_CONFIG", str(DEFAULT_CONFIG_PATH))),
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            encryption_key=os.getenv("AI_ENCRYPTION_KEY") or None,
            events_enabled=os.getenv("EVENTS_ENABLED", "true").lower() in {"1", "true", "yes"},
            replicate_max_wait_seconds=float(os.getenv("REPLICATE_MAX_WAIT_SECONDS", "300")),
            replicate_poll_interval_seconds=float(
                os.getenv("REPLICATE_POLL_INTERVAL_SECONDS", "1")
            ),
        )


@lru_cache(maxsize=4)
def load_config(path: pathlib.Path | None = None) -> AppConfig:
    """Load the provider catalog from YAML."""
    config_path = path or DEFAULT_CONFIG_PATH
    raw = yaml.safe_load(config_path.read_text())
    return AppConfig(**raw)
