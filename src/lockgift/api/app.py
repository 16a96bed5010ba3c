"""FastAPI application configuration (LockGift API)."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry, make_asgi_app, multiprocess

from ..domain.errors import ConfigurationError
from ..env import get_settings
from ..infrastructure.database import DatabaseClient
from ..infrastructure.scripts import register_ledger_scripts
from .dependencies import (
    get_chain_provider_dependency,
    get_database_client_dependency,
    get_store_dependency,
)
from .routers import admin, gifts, webhooks

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await register_ledger_scripts(get_store_dependency())
    yield
    await get_chain_provider_dependency().aclose()
    await get_database_client_dependency().close()


def _metrics_app():
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return make_asgi_app(registry=registry)
    return make_asgi_app()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="LockGift time-locked bitcoin gift API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Include routers
    app.include_router(gifts.router, prefix="/api/v1")
    app.include_router(webhooks.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")
    app.mount("/metrics", _metrics_app())

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        logger.error("Request to %s needs configuration: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc)},
        )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": f"Welcome to {settings.app_name} API",
            "version": settings.app_version,
            "docs": "/docs",
        }

    @app.get("/ready")
    async def readiness_check(
        db_client: DatabaseClient = Depends(get_database_client_dependency),
    ) -> JSONResponse:
        """Readiness endpoint: the ledger store must answer."""
        if await db_client.ping():
            return JSONResponse({"status": "ready"})
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable", "database": db_client.redacted_url},
        )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "network": settings.network,
        }

    return app


app = create_app()
