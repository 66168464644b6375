"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import structlog
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from iac_orchestrator.api.middleware.correlation import CorrelationIdMiddleware
from iac_orchestrator.api.routes import (
    deployment_routes,
    health_routes,
    repository_routes,
)
from iac_orchestrator.config import get_settings, Settings


logger = structlog.get_logger(__name__)


def _lifespan(settings: Settings) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        storage = settings.storage
        storage.state_dir.mkdir(parents=True, exist_ok=True)
        storage.repository_cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            "application_starting",
            environment=settings.environment.value,
            provisioner=settings.provisioning.backend,
            state_dir=str(storage.state_dir),
            repository_cache_dir=str(storage.repository_cache_dir),
        )

        yield

        logger.info("application_shutdown_complete")

    return lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="IaC Deployment Orchestrator",
        description="Staged, resumable OpenTofu deployments from cached template repositories",
        version="1.0.0",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=_lifespan(settings),
    )

    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(health_routes.router)
    app.include_router(deployment_routes.router, prefix=settings.api_prefix)
    app.include_router(repository_routes.router, prefix=settings.api_prefix)

    if settings.observability.metrics_enabled:
        app.mount("/metrics", make_asgi_app())

    return app
