"""Health check endpoints."""
from fastapi import APIRouter, Request
import logging

from ..core.database import health_check_db
from ..core.responses import utc_now_iso

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check(request: Request):
    """Basic health check"""
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@router.get("/full")
async def full_health_check(request: Request):
    """Comprehensive health check"""
    db_healthy = await health_check_db(request.app.state.engine)
    cache_healthy = await request.app.state.cache.ping()

    health_status = {
        "service": "healthy",
        "database": "healthy" if db_healthy else "unhealthy",
        "cache": "healthy" if cache_healthy else "unhealthy",
    }
    overall_status = "healthy" if all(
        status == "healthy" for status in health_status.values()
    ) else "degraded"

    if overall_status != "healthy":
        logger.warning(f"Health check degraded: {health_status}")

    return {
        "status": overall_status,
        "components": health_status,
        "timestamp": utc_now_iso(),
    }
