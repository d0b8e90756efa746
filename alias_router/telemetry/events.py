"""Event recording helpers for routing telemetry."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select

from alias_router.core.exceptions import StorageError
from alias_router.logging import get_request_id
from alias_router.storage.database import Datastore
from alias_router.storage.models import RouterEvent

logger = logging.getLogger("alias_router.events")

_RETENTION_DAYS = 2  # keep today + yesterday


def current_retention_cutoff() -> datetime:
    """Return the UTC timestamp cutoff for events to retain."""
    now_utc = datetime.now(timezone.utc)
    start_of_today = datetime(now_utc.year, now_utc.month, now_utc.day, tzinfo=timezone.utc)
    return start_of_today - timedelta(days=_RETENTION_DAYS - 1)


class EventLog:
    """Short-retention stream of routing events for operator dashboards."""

    def __init__(self, store: Datastore, *, enabled: bool = True) -> None:
        self._store = store
        self.enabled = enabled

    def _prune(self, session) -> None:
        session.execute(delete(RouterEvent).where(RouterEvent.ts < current_retention_cutoff()))

    def record(
        self,
        kind: str,
        level: str,
        *,
        message: str | None = None,
        request_id: str | None = None,
        meta: Dict[str, Any] | None = None,
        **fields: Any,
    ) -> None:
        if not self.enabled:
            return

        event = RouterEvent(
            ts=datetime.now(timezone.utc),
            level=level.upper(),
            kind=kind,
            request_id=request_id or get_request_id(),
            alias_name=fields.get("alias_name"),
            provider_from=fields.get("provider_from"),
            provider_to=fields.get("provider_to"),
            model=fields.get("model"),
            message=message,
            meta=json.dumps(meta, ensure_ascii=True) if meta else None,
        )

        try:
            with self._store.session_scope() as session:
                session.add(event)
                self._prune(session)
        except StorageError:
            logger.exception(
                "Failed to record event", extra={"event": "event_persist_error", "kind": kind}
            )

    def list_recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Return recent events ordered newest first."""
        if not self.enabled:
            return []

        with self._store.session_scope() as session:
            self._prune(session)
            stmt = (
                select(RouterEvent)
                .where(RouterEvent.ts >= current_retention_cutoff())
                .order_by(RouterEvent.ts.desc(), RouterEvent.id.desc())
                .limit(limit)
            )
            rows = session.scalars(stmt).all()

        events: List[Dict[str, Any]] = []
        for row in rows:
            meta_value: Optional[Dict[str, Any] | str]
            if row.meta:
                try:
                    meta_value = json.loads(row.meta)
                except json.JSONDecodeError:
                    meta_value = row.meta
            else:
                meta_value = None

            events.append(
                {
                    "id": row.id,
                    "timestamp": row.ts.isoformat() if row.ts else None,
                    "level": row.level,
                    "kind": row.kind,
                    "request_id": row.request_id,
                    "alias_name": row.alias_name,
                    "provider_from": row.provider_from,
                    "provider_to": row.provider_to,
                    "model": row.model,
                    "message": row.message,
                    "meta": meta_value,
                }
            )
        return events


__all__ = ["EventLog", "current_retention_cutoff"]
