from __future__ import annotations

import json
from http import HTTPStatus
from typing import Any

import pytest

from alias_router.core.config import DEFAULT_CONFIG_PATH, AppConfig, Settings, load_config
from alias_router.services import Services
from alias_router.storage.database import Datastore


class FakeResponse:
    def __init__(
        self, status_code: int, payload: Any | None = None, text: str | None = None
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self._text = text

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    @property
    def is_error(self) -> bool:
        return self.status_code >= HTTPStatus.BAD_REQUEST

    @property
    def text(self) -> str:
        if self._text is not None:
            return self._text
        if self._payload is None:
            return ""
        return json.dumps(self._payload)


class StubHTTP:
    """Scripted stand-in for ``httpx.AsyncClient``.

    Queued items are returned in order; exception instances are raised instead.
    """

    def __init__(self) -> None:
        self.responses: list[Any] = []
        self.calls: list[dict[str, Any]] = []
        self.timeouts: list[Any] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def _next(self, method: str, url: str, headers: Any, payload: Any) -> Any:
        self.calls.append({"method": method, "url": url, "headers": headers, "json": payload})
        if not self.responses:
            raise AssertionError(f"Unexpected {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def client_class(self):
        stub = self

        class _DummyAsyncClient:
            def __init__(self, *args, **kwargs) -> None:
                stub.timeouts.append(kwargs.get("timeout"))

            async def __aenter__(self):
                return self

            async def __aexit__(self, exc_type, exc, tb):
                return False

            async def get(self, url, headers=None):
                return stub._next("GET", url, headers, None)

            async def post(self, url, json=None, headers=None):
                return stub._next("POST", url, headers, json)

        return _DummyAsyncClient


@pytest.fixture
def http_stub(monkeypatch) -> StubHTTP:
    stub = StubHTTP()
    monkeypatch.setattr("alias_router.providers.base.httpx.AsyncClient", stub.client_class())
    monkeypatch.setattr("alias_router.providers.base.RATE_LIMIT_BACKOFF_SECONDS", 0)
    return stub


@pytest.fixture
def store() -> Datastore:
    datastore = Datastore("sqlite://")
    datastore.init_db()
    yield datastore
    datastore.dispose()


@pytest.fixture
def catalog() -> AppConfig:
    return load_config(DEFAULT_CONFIG_PATH)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        encryption_key="test-secret",
        replicate_max_wait_seconds=5,
        replicate_poll_interval_seconds=0,
    )


@pytest.fixture
def services(settings, catalog):
    built = Services.build(settings, catalog)
    yield built
    built.shutdown()
