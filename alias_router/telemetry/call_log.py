"""Append-only AI call log and usage aggregation."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, List

from sqlalchemy import select

from alias_router.core.exceptions import StorageError
from alias_router.storage.database import Datastore
from alias_router.storage.models import AICallLog

logger = logging.getLogger("alias_router.call_log")

TIMEFRAMES = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

_DEFAULTS: Dict[str, Any] = {
    "input_tokens": 0,
    "output_tokens": 0,
    "total_tokens": 0,
    "input_characters": 0,
    "output_characters": 0,
    "media_seconds": 0.0,
    "media_frames": 0,
    "cost_estimate_usd": 0.0,
    "latency_ms": 0,
    "fallback_used": False,
    "request_metadata": {},
    "response_metadata": {},
}


class CallLogWriter:
    """Write one immutable row per logical attempt.

    Writes are best effort: a storage failure never reaches the caller. The
    row is kept in ``dropped`` and reported on the ``alias_router.call_log``
    logger so operators can replay or alert on it.
    """

    def __init__(self, store: Datastore, *, dropped_capacity: int = 100) -> None:
        self._store = store
        self.dropped: Deque[Dict[str, Any]] = deque(maxlen=dropped_capacity)

    def record(self, **fields: Any) -> AICallLog | None:
        row = {**_DEFAULTS, **fields}
        try:
            return self._store.create(AICallLog.__tablename__, row)
        except StorageError as exc:
            self.dropped.append(row)
            logger.error(
                "Failed to persist AI call log",
                extra={
                    "event": "call_log_dropped",
                    "alias_name": row.get("alias_name"),
                    "provider_name": row.get("provider_name"),
                    "log_request_id": row.get("request_id"),
                    "error_message": exc.message,
                },
            )
            return None

    def list_for_request(self, request_id: str) -> list[AICallLog]:
        return self._store.find_many(AICallLog.__tablename__, {"request_id": request_id})

    def usage_summary(
        self, user_id: int, workspace_id: int, timeframe: str = "month"
    ) -> Dict[str, Any]:
        """Aggregate recent call logs by provider and alias."""
        window = TIMEFRAMES.get(timeframe, TIMEFRAMES["month"])
        start = datetime.now(timezone.utc) - window

        stmt = (
            select(AICallLog)
            .where(AICallLog.user_id == user_id)
            .where(AICallLog.workspace_id == workspace_id)
            .where(AICallLog.created_at >= start)
            .order_by(AICallLog.created_at.desc(), AICallLog.id.desc())
            .limit(10_000)
        )
        with self._store.session_scope() as session:
            rows = list(session.scalars(stmt).all())

        by_provider: Dict[str, Dict[str, Any]] = {}
        by_alias: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            provider = by_provider.setdefault(
                row.provider_name,
                {"calls": 0, "tokens": 0, "cost": 0.0, "successes": 0, "latency_total": 0},
            )
            provider["calls"] += 1
            provider["tokens"] += row.total_tokens
            provider["cost"] += row.cost_estimate_usd
            provider["latency_total"] += row.latency_ms
            if row.status == "success":
                provider["successes"] += 1

            alias = by_alias.setdefault(
                row.alias_name,
                {"calls": 0, "tokens": 0, "cost": 0.0, "successes": 0, "fallbacks": 0},
            )
            alias["calls"] += 1
            alias["tokens"] += row.total_tokens
            alias["cost"] += row.cost_estimate_usd
            if row.status == "success":
                alias["successes"] += 1
            if row.fallback_used:
                alias["fallbacks"] += 1

        recent_errors: List[Dict[str, Any]] = [
            {
                "provider": row.provider_name,
                "error": row.error_message,
                "timestamp": row.created_at.isoformat() if row.created_at else None,
            }
            for row in rows
            if row.status == "error" and row.error_message
        ][:10]

        return {
            "timeframe": timeframe if timeframe in TIMEFRAMES else "month",
            "total_calls": len(rows),
            "total_tokens": sum(row.total_tokens for row in rows),
            "total_cost_usd": sum(row.cost_estimate_usd for row in rows),
            "by_provider": {
                name: {
                    "calls": stats["calls"],
                    "tokens": stats["tokens"],
                    "cost": stats["cost"],
                    "success_rate": round(stats["successes"] / stats["calls"] * 100),
                    "avg_latency": round(stats["latency_total"] / stats["calls"]),
                }
                for name, stats in by_provider.items()
            },
            "by_alias": {
                name: {
                    "calls": stats["calls"],
                    "tokens": stats["tokens"],
                    "cost": stats["cost"],
                    "success_rate": round(stats["successes"] / stats["calls"] * 100),
                    "fallback_rate": round(stats["fallbacks"] / stats["calls"] * 100),
                }
                for name, stats in by_alias.items()
            },
            "recent_errors": recent_errors,
        }


__all__ = ["CallLogWriter", "TIMEFRAMES"]
