"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from alias_router.api import admin, invoke
from alias_router.core.config import AppConfig, Settings
from alias_router.core.exceptions import (
    AccessDenied,
    AliasNotFound,
    AliasRouterError,
    AliasValidationError,
    AllProvidersExhausted,
    ConfigurationError,
    NotFound,
    StorageError,
    VaultError,
)
from alias_router.logging import configure_logging, get_request_id
from alias_router.middleware.request_context import RequestContextMiddleware
from alias_router.services import Services

logger = logging.getLogger("alias_router.app")

_STATUS_BY_ERROR: tuple[tuple[type[AliasRouterError], int, str], ...] = (
    (AliasNotFound, 404, "alias_not_found"),
    (NotFound, 404, "not_found"),
    (AccessDenied, 403, "access_denied"),
    (AliasValidationError, 400, "invalid_alias"),
    (ConfigurationError, 400, "configuration_error"),
    (AllProvidersExhausted, 502, "all_providers_exhausted"),
    (VaultError, 500, "vault_error"),
    (StorageError, 500, "storage_error"),
)


def _error_response(status_code: int, message: str, error_type: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": error_type, "code": code}},
    )


def create_app(settings: Settings | None = None, catalog: AppConfig | None = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        services = Services.build(settings, catalog)
        app.state.services = services
        try:
            yield
        finally:
            services.shutdown()

    app = FastAPI(
        title="Alias Router",
        version="0.1.0",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.include_router(invoke.router)
    app.include_router(admin.router)
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(AliasRouterError)
    async def alias_router_exception_handler(
        request: Request, exc: AliasRouterError
    ) -> JSONResponse:
        for error_cls, status_code, code in _STATUS_BY_ERROR:
            if isinstance(exc, error_cls):
                break
        else:
            status_code, code = 500, "internal_error"

        if status_code >= 500:
            logger.error(
                "Request failed",
                extra={
                    "event": "request_error",
                    "path": request.url.path,
                    "error_type": type(exc).__name__,
                    "error_message": exc.message,
                },
            )
            services = getattr(request.app.state, "services", None)
            if services is not None:
                services.events.record(
                    "request_error",
                    "ERROR",
                    message=exc.message,
                    meta={"path": request.url.path, "code": code},
                )
        return _error_response(status_code, exc.message, type(exc).__name__, code)

    @app.exception_handler(Exception)
    async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error",
            extra={
                "event": "request_error",
                "path": request.url.path,
                "request_id": get_request_id(),
            },
        )
        return _error_response(
            500, "Internal server error", "internal_server_error", "internal_error"
        )

    return app


def build_app() -> FastAPI:
    """Factory used by uvicorn; configures logging before the app exists."""
    settings = Settings.from_env()
    configure_logging(settings)
    return create_app(settings)
