"""
Health check endpoints.

Provides database and visitor-counter status for monitoring.
"""

from fastapi import APIRouter, HTTPException, status
import structlog

from src.core.config import settings
from src.persistence.database import check_database_health

log = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Overall status plus database details (session count, last visitor
        number handed out, integrity check).
    """
    db_health = await check_database_health()

    overall_status = "healthy" if db_health["status"] == "healthy" else "unhealthy"
    if overall_status != "healthy":
        log.warning("health_check_unhealthy", error=db_health.get("error"))

    return {
        "status": overall_status,
        "version": "0.1.0",
        "debug": settings.debug,
        "components": {"database": db_health},
    }


@router.get("/health/live")
async def liveness():
    """Liveness probe. Returns 200 while the process is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness():
    """Readiness probe. Returns 503 until the database answers."""
    db_health = await check_database_health()

    if db_health["status"] != "healthy":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database not ready"
        )

    return {"status": "ready"}
