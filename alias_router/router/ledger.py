"""Per-key monthly budgets, usage accounting and rate limiting."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, Literal

from pydantic import BaseModel

from alias_router.core.exceptions import NotFound, StorageError
from alias_router.providers.base import Usage
from alias_router.storage.database import Datastore
from alias_router.storage.models import ProviderBudget

logger = logging.getLogger("alias_router.ledger")

BUDGETS = ProviderBudget.__tablename__
WARNING_PERCENT = 80.0
BLOCK_PERCENT = 100.0
RATE_WINDOW_SECONDS = 60.0


def current_period() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m")


class BudgetStatus(BaseModel):
    allowed: bool
    status: Literal["no_limit", "ok", "warning", "blocked"]
    reason: str
    usage_percent: float | None = None
    spent_usd: float = 0.0
    limit_usd: float | None = None


class BudgetLedger:
    """Answer "is this call allowed" and apply usage deltas for provider keys.

    Usage is applied with one ``UPDATE ... SET col = col + :delta`` per call,
    so concurrent requests against the same key never lose updates. Counters
    reset on the first touch in a new calendar month.
    """

    def __init__(
        self,
        store: Datastore,
        *,
        period: Callable[[], str] = current_period,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._period = period
        self._clock = clock
        self._rate_lock = threading.Lock()
        self._rate_windows: dict[int, Deque[float]] = {}

    def open_budget(
        self,
        key_id: int,
        *,
        budget_limit_usd: float | None = None,
        token_limit: int | None = None,
        request_limit: int | None = None,
    ) -> ProviderBudget:
        return self._store.create(
            BUDGETS,
            {
                "provider_key_id": key_id,
                "budget_limit_usd": budget_limit_usd,
                "token_limit": token_limit,
                "request_limit": request_limit,
                "current_spend_usd": 0.0,
                "current_tokens": 0,
                "current_requests": 0,
                "period": self._period(),
            },
        )

    def get_budget(self, key_id: int) -> ProviderBudget | None:
        budget = self._store.find_one(BUDGETS, {"provider_key_id": key_id})
        if budget is None:
            return None
        if self._roll_period(budget):
            budget = self._store.find_by_id(BUDGETS, budget.id)
        return budget

    def update_limits(self, key_id: int, **limits: float | int | None) -> ProviderBudget:
        allowed = {"budget_limit_usd", "token_limit", "request_limit"}
        unknown = set(limits) - allowed
        if unknown:
            raise ValueError(f"Unknown budget fields: {', '.join(sorted(unknown))}")
        budget = self._store.find_one(BUDGETS, {"provider_key_id": key_id})
        if budget is None:
            raise NotFound(f"No budget for provider key {key_id}")
        return self._store.update(BUDGETS, budget.id, limits)

    def check_budget(self, key_id: int) -> BudgetStatus:
        budget = self.get_budget(key_id)
        if budget is None:
            return BudgetStatus(allowed=True, status="no_limit", reason="No budget limits set")

        ratios: list[tuple[float, str]] = []
        if budget.budget_limit_usd is not None:
            ratios.append((_percent(budget.current_spend_usd, budget.budget_limit_usd), "budget"))
        if budget.token_limit is not None:
            ratios.append((_percent(budget.current_tokens, budget.token_limit), "token limit"))
        if budget.request_limit is not None:
            ratios.append(
                (_percent(budget.current_requests, budget.request_limit), "request limit")
            )

        if not ratios:
            return BudgetStatus(
                allowed=True,
                status="no_limit",
                reason="No budget limits set",
                spent_usd=budget.current_spend_usd,
            )

        percent, cap = max(ratios)
        common = {
            "usage_percent": percent,
            "spent_usd": budget.current_spend_usd,
            "limit_usd": budget.budget_limit_usd,
        }
        if percent >= BLOCK_PERCENT:
            return BudgetStatus(
                allowed=False,
                status="blocked",
                reason=f"monthly {cap} reached ({percent:.0f}% used). "
                "Increase the cap or switch to another key.",
                **common,
            )
        if percent >= WARNING_PERCENT:
            return BudgetStatus(
                allowed=True,
                status="warning",
                reason=f"Budget warning: {percent:.0f}% of monthly {cap} used",
                **common,
            )
        return BudgetStatus(allowed=True, status="ok", reason="Within budget", **common)

    def apply_usage(self, key_id: int, usage: Usage) -> None:
        """Atomically add one request and its spend/tokens to the key's counters."""
        deltas = {
            "current_spend_usd": usage.cost_estimate_usd,
            "current_tokens": usage.total_tokens,
            "current_requests": 1,
        }
        budget = self._store.find_one(BUDGETS, {"provider_key_id": key_id})
        if budget is None:
            try:
                budget = self.open_budget(key_id)
            except StorageError:
                # Another request opened the row concurrently.
                budget = self._store.find_one(BUDGETS, {"provider_key_id": key_id})
                if budget is None:
                    raise

        self._roll_period(budget)
        applied = self._store.increment(
            BUDGETS,
            budget.id,
            deltas,
            values={"updated_at": datetime.now(timezone.utc)},
            where={"period": self._period()},
        )
        if not applied:
            # Month rolled over between the reset and the increment.
            self._roll_period(budget)
            self._store.increment(BUDGETS, budget.id, deltas)

    def acquire_rate_slot(self, key_id: int, limit_per_minute: int | None) -> bool:
        """Sliding 60 second window per key, local to this process."""
        if not limit_per_minute:
            return True
        now = self._clock()
        with self._rate_lock:
            window = self._rate_windows.setdefault(key_id, deque())
            while window and now - window[0] >= RATE_WINDOW_SECONDS:
                window.popleft()
            if len(window) >= limit_per_minute:
                return False
            window.append(now)
            return True

    def _roll_period(self, budget: ProviderBudget) -> bool:
        period = self._period()
        if budget.period == period:
            return False
        reset = self._store.update_where(
            BUDGETS,
            budget.id,
            {
                "current_spend_usd": 0.0,
                "current_tokens": 0,
                "current_requests": 0,
                "period": period,
            },
            where_not={"period": period},
        )
        if reset:
            logger.info(
                "Budget period reset",
                extra={"event": "budget_reset", "provider_key_id": budget.provider_key_id},
            )
        return True


def _percent(current: float, limit: float) -> float:
    if limit <= 0:
        return BLOCK_PERCENT
    return current / limit * 100


__all__ = ["BudgetLedger", "BudgetStatus", "current_period"]
