"""ORM models for the key vault, alias catalog, budgets and call logs."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderKey(Base):
    __tablename__ = "provider_keys"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    workspace_id = Column(Integer, nullable=False)
    provider_name = Column(String(100), nullable=False)
    key_label = Column(String(200), nullable=False)
    encrypted_api_key = Column(Text, nullable=False)
    key_last_four = Column(String(4), nullable=False)
    scopes = Column(JSON, nullable=False)
    status = Column(String(16), nullable=False, default="active")
    last_verified_at = Column(DateTime(timezone=True))
    verification_error = Column(String(512))
    rate_limit_per_minute = Column(Integer)
    data_residency = Column(String(16), nullable=False, default="global")
    zero_retention_mode = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_provider_keys_workspace_provider_status", "workspace_id", "provider_name", "status"),
    )


class ProviderBudget(Base):
    __tablename__ = "provider_budgets"
    __table_args__ = (
        UniqueConstraint("provider_key_id", name="uq_provider_budgets_provider_key_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_key_id = Column(Integer, ForeignKey("provider_keys.id"), nullable=False)
    budget_limit_usd = Column(Float)
    token_limit = Column(Integer)
    request_limit = Column(Integer)
    current_spend_usd = Column(Float, nullable=False, default=0.0)
    current_tokens = Column(Integer, nullable=False, default=0)
    current_requests = Column(Integer, nullable=False, default=0)
    # Calendar month the counters belong to, formatted YYYY-MM.
    period = Column(String(7), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class ModelAlias(Base):
    __tablename__ = "model_aliases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    workspace_id = Column(Integer, nullable=False)
    alias_name = Column(String(100), nullable=False)
    display_name = Column(String(200), nullable=False)
    modality = Column(String(16), nullable=False)
    capability = Column(String(16), nullable=False)
    primary_provider = Column(String(100), nullable=False)
    primary_model = Column(String(200), nullable=False)
    fallback_chain = Column(JSON, nullable=False, default=list)
    routing_preference = Column(String(16), nullable=False, default="quality")
    allow_aggregators = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_model_aliases_workspace_name", "workspace_id", "alias_name", "is_active"),
    )


class AICallLog(Base):
    __tablename__ = "ai_call_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    workspace_id = Column(Integer, nullable=False)
    alias_name = Column(String(100), nullable=False)
    provider_name = Column(String(100), nullable=False)
    model_name = Column(String(200), nullable=False)
    modality = Column(String(16), nullable=False)
    capability = Column(String(16), nullable=False)
    request_id = Column(String(64), nullable=False)
    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)
    total_tokens = Column(Integer, nullable=False, default=0)
    input_characters = Column(Integer, nullable=False, default=0)
    output_characters = Column(Integer, nullable=False, default=0)
    media_seconds = Column(Float, nullable=False, default=0.0)
    media_frames = Column(Integer, nullable=False, default=0)
    cost_estimate_usd = Column(Float, nullable=False, default=0.0)
    latency_ms = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False)
    error_code = Column(String(64))
    error_message = Column(String(1024))
    fallback_used = Column(Boolean, nullable=False, default=False)
    fallback_reason = Column(String(1024))
    provider_of_record = Column(String(100), nullable=False)
    request_metadata = Column(JSON, nullable=False, default=dict)
    response_metadata = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_ai_call_logs_workspace_created", "workspace_id", "created_at"),
        Index("ix_ai_call_logs_request_id", "request_id"),
    )


class RouterEvent(Base):
    __tablename__ = "router_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ts = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    level = Column(String(16), nullable=False)
    kind = Column(String(64), nullable=False)
    request_id = Column(String(64))
    alias_name = Column(String(100))
    provider_from = Column(String(100))
    provider_to = Column(String(100))
    model = Column(String(200))
    message = Column(String(1024))
    meta = Column(Text)

    __table_args__ = (
        Index("ix_router_events_ts", "ts"),
        Index("ix_router_events_kind_ts", "kind", "ts"),
    )


TABLES: dict[str, type[Base]] = {
    model.__tablename__: model
    for model in (ProviderKey, ProviderBudget, ModelAlias, AICallLog, RouterEvent)
}
