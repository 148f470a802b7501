"""
Health Routes
=============
Liveness and readiness for the 2FA service.

The only external dependency is the Redis state store, when configured.
Without it state lives in-process and the service is always ready.
"""

from typing import Any, Optional
import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


class HealthReport(BaseModel):
    status: str                       # "healthy" or "unhealthy"
    service: str
    version: str
    state_store: str                  # "memory", "redis" or "redis-unreachable"


async def redis_reachable(redis_client: Any) -> bool:
    try:
        await redis_client.ping()
    except Exception as e:
        logger.error("State store ping failed", error=str(e))
        return False
    return True


def create_health_router(
    service_name: str,
    version: str,
    redis_client: Any = None,
) -> APIRouter:
    """Create /health, /health/live and /health/ready."""
    router = APIRouter(tags=["Health"])

    async def store_state() -> str:
        if redis_client is None:
            return "memory"
        return "redis" if await redis_reachable(redis_client) else "redis-unreachable"

    @router.get("/health", response_model=HealthReport)
    async def health() -> HealthReport:
        state_store = await store_state()
        return HealthReport(
            status="unhealthy" if state_store == "redis-unreachable" else "healthy",
            service=service_name,
            version=version,
            state_store=state_store,
        )

    @router.get("/health/live")
    async def live():
        return {"status": "alive"}

    @router.get("/health/ready")
    async def ready():
        if await store_state() == "redis-unreachable":
            return JSONResponse(status_code=503, content={"status": "not_ready", "reason": "state_store_unavailable"})
        return {"status": "ready"}

    return router
