"""Health check endpoints router for monitoring service availability."""

from typing import Any

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse

from src.gatehouse.api.http.app_data import ApplicationDependencies
from src.gatehouse.api.http.deps import get_app_dependencies
from src.gatehouse.core.storage import RedisSessionStorage
from src.gatehouse.runtime.context import get_config

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness check: 200 as long as the process is running."""
    return {"status": "healthy"}


@router.get("/ready", response_model=None)
async def readiness(
    app_deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> dict[str, Any] | JSONResponse:
    """Readiness check: 503 when the database is unreachable or no provider is registered.

    Session storage falling back to memory is reported but not fatal.
    """
    config = get_config()
    checks: dict[str, Any] = {}
    all_healthy = True

    db_healthy = await run_in_threadpool(app_deps.database_service.health_check)
    checks["database"] = {
        "status": "healthy" if db_healthy else "unhealthy",
        "type": "postgresql" if "postgresql" in config.database.url else "sqlite",
    }
    all_healthy = all_healthy and db_healthy

    storage = app_deps.session_storage
    if isinstance(storage, RedisSessionStorage):
        redis_healthy = await storage.ping()
        checks["session_storage"] = {
            "status": "healthy" if redis_healthy else "degraded",
            "type": "redis",
        }
    else:
        checks["session_storage"] = {"status": "healthy", "type": "in-memory"}

    providers = [p.provider_type.value for p in app_deps.provider_registry.get_all()]
    checks["identity_providers"] = {
        "status": "healthy" if providers else "unhealthy",
        "registered": providers,
    }
    all_healthy = all_healthy and bool(providers)

    body = {"status": "ready" if all_healthy else "not_ready", "checks": checks}
    if not all_healthy:
        return JSONResponse(status_code=503, content=body)
    return body
