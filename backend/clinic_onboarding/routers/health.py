"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from clinic_onboarding.config import settings
from clinic_onboarding.database import engine
from clinic_onboarding.utils.cache import get_redis

router = APIRouter(tags=["health"])

SERVICE_NAME = "clinic-onboarding"


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no DB/Redis check)."""
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness check covering the configured progress store.

    Returns 200 only if every dependency the service will actually use is
    reachable; the backend not selected by PROGRESS_BACKEND is reported as
    "skipped".
    """
    checks = {
        "service": "ok",
        "database": "skipped",
        "redis": "skipped",
    }
    overall_healthy = True

    if settings.progress_backend == "database":
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as e:
            checks["database"] = f"error: {str(e)[:100]}"
            overall_healthy = False

    # Redis also backs the uniqueness cache, so check it unless running in memory
    if settings.progress_backend != "memory":
        try:
            redis_client = await get_redis()
            await redis_client.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {str(e)[:100]}"
            overall_healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": SERVICE_NAME,
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
