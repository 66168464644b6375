"""Health check routes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from iac_orchestrator.api.dependencies.services import get_service_container, ServiceContainer


router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
    }


@router.get("/health/ready")
async def readiness_check(
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> dict[str, Any]:
    """Readiness check: storage is writable and the provisioning tool answers."""
    checks: dict[str, str] = {}

    storage = container.settings.storage
    try:
        storage.state_dir.mkdir(parents=True, exist_ok=True)
        storage.repository_cache_dir.mkdir(parents=True, exist_ok=True)
        checks["storage"] = "ok"
    except OSError as e:
        checks["storage"] = f"error: {e}"

    try:
        checks["provisioning_tool"] = "ok"
        checks["provisioning_tool_version"] = await container.provisioning_tool.version()
    except Exception as e:
        checks["provisioning_tool"] = f"error: {e}"

    all_ok = checks["storage"] == "ok" and checks["provisioning_tool"] == "ok"
    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Liveness check - verifies the service is running."""
    return {"status": "alive"}
