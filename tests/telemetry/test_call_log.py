from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from alias_router.core.exceptions import StorageError
from alias_router.telemetry.call_log import CallLogWriter

USER_ID = 1
WORKSPACE_ID = 10


def _row(**overrides):
    values = {
        "user_id": USER_ID,
        "workspace_id": WORKSPACE_ID,
        "alias_name": "default-writer",
        "provider_name": "openai",
        "model_name": "gpt-4",
        "modality": "text",
        "capability": "chat",
        "request_id": "req_1",
        "status": "success",
        "provider_of_record": "openai",
        "total_tokens": 100,
        "cost_estimate_usd": 0.5,
        "latency_ms": 200,
    }
    values.update(overrides)
    return values


def test_record_fills_defaults(store):
    writer = CallLogWriter(store)

    row = writer.record(**_row())

    assert row.id is not None
    assert row.input_characters == 0
    assert row.fallback_used is False
    assert row.request_metadata == {}
    assert [r.id for r in writer.list_for_request("req_1")] == [row.id]


def test_storage_failure_is_captured_not_raised(store, monkeypatch, caplog):
    writer = CallLogWriter(store, dropped_capacity=2)

    def broken_create(table, values):
        raise StorageError("disk I/O error")

    monkeypatch.setattr(store, "create", broken_create)

    with caplog.at_level("ERROR", logger="alias_router.call_log"):
        for index in range(3):
            assert writer.record(**_row(request_id=f"req_{index}")) is None

    assert [row["request_id"] for row in writer.dropped] == ["req_1", "req_2"]
    dropped_events = [r for r in caplog.records if getattr(r, "event", None) == "call_log_dropped"]
    assert len(dropped_events) == 3


def test_usage_summary_aggregates_by_provider_and_alias(store):
    writer = CallLogWriter(store)
    writer.record(**_row(latency_ms=100))
    writer.record(**_row(latency_ms=300, fallback_used=True))
    writer.record(
        **_row(
            provider_name="anthropic",
            model_name="claude-3-5-sonnet-20241022",
            alias_name="fast-drafts",
            status="error",
            error_message="Anthropic API error: HTTP 529",
            total_tokens=0,
            cost_estimate_usd=0.0,
        )
    )
    writer.record(**_row(workspace_id=WORKSPACE_ID + 1))

    summary = writer.usage_summary(USER_ID, WORKSPACE_ID, "week")

    assert summary["timeframe"] == "week"
    assert summary["total_calls"] == 3
    assert summary["total_tokens"] == 200
    assert summary["total_cost_usd"] == pytest.approx(1.0)
    assert summary["by_provider"]["openai"] == {
        "calls": 2,
        "tokens": 200,
        "cost": pytest.approx(1.0),
        "success_rate": 100,
        "avg_latency": 200,
    }
    assert summary["by_provider"]["anthropic"]["success_rate"] == 0
    assert summary["by_alias"]["default-writer"]["fallback_rate"] == 50
    assert summary["recent_errors"][0]["provider"] == "anthropic"


def test_usage_summary_ignores_rows_outside_window(store):
    writer = CallLogWriter(store)
    writer.record(**_row(created_at=datetime.now(timezone.utc) - timedelta(days=3)))
    writer.record(**_row())

    assert writer.usage_summary(USER_ID, WORKSPACE_ID, "day")["total_calls"] == 1
    assert writer.usage_summary(USER_ID, WORKSPACE_ID, "bogus")["timeframe"] == "month"
