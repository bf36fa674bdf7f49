"""
Tailfire admin API — FastAPI app exposing credential administration.

The credential startup sweep runs in the lifespan, before the first request
is served. Domain errors map to HTTP statuses here so routes stay thin:

    ValidationError             400  (body lists every failing field)
    NotFoundError               404
    ConflictError               409
    TransportError              502
    ConfigurationError          503
    ProviderInitializationError 503

Start:
  tailfire serve
  # or
  uvicorn tailfire.api.app:create_app --factory --port 9300
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tailfire import __version__
from tailfire.api.credentials import router as credentials_router
from tailfire.api.deps import Services
from tailfire.db import close_pool
from tailfire.errors import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    ProviderInitializationError,
    TransportError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, exc: Exception, **extra) -> JSONResponse:
    return JSONResponse({"error": str(exc), **extra}, status_code=status_code)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        return _error(400, exc, errors=exc.errors)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return _error(404, exc)

    @app.exception_handler(ConflictError)
    async def _conflict(request: Request, exc: ConflictError):
        return _error(409, exc)

    @app.exception_handler(TransportError)
    async def _transport(request: Request, exc: TransportError):
        logger.error("Upstream failure: %s", exc)
        return _error(502, exc, kind=str(exc.kind))

    @app.exception_handler(ConfigurationError)
    async def _configuration(request: Request, exc: ConfigurationError):
        return _error(503, exc, provider=exc.provider, missingVars=exc.missing_vars)

    @app.exception_handler(ProviderInitializationError)
    async def _provider_init(request: Request, exc: ProviderInitializationError):
        return _error(503, exc, provider=exc.provider)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the app. ``services`` is built from configuration when omitted."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        summary = app.state.services.resolver.validate_startup()
        logger.info(
            "Tailfire API ready: %d/%d providers available",
            len(summary.available),
            summary.total,
        )
        yield
        await app.state.services.storage.aclose()
        close_pool()

    app = FastAPI(
        title="Tailfire Credentials API",
        description="Encrypted, versioned third-party API credentials and storage providers.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services or Services.build()
    _register_error_handlers(app)
    app.include_router(credentials_router)

    @app.get("/health")
    async def health():
        resolver = app.state.services.resolver
        return {
            "status": "ok",
            "version": __version__,
            "availableProviders": resolver.get_available_providers(),
        }

    return app
