"""
Health check endpoints.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import redis.asyncio as redis

from config import PROVIDER_CREDENTIAL_FIELDS, settings
from database import engine
from services.connectors import connector_capabilities

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Reports database and Redis reachability plus which providers are configured.
    """
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "redis": "unknown",
        "providers": connector_capabilities(),
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["database"] = "up"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database health check failed: %s", e)
        health_status["database"] = f"down: {e}"
        health_status["status"] = "degraded"

    # Redis only backs rate limiting; local counters take over when it is down
    try:
        r = redis.from_url(settings.REDIS_URL)
        try:
            await r.ping()
        finally:
            await r.aclose()
        health_status["redis"] = "up"
    except (redis.RedisError, OSError) as e:
        health_status["redis"] = f"down: {e}"
        health_status["status"] = "degraded"

    return health_status


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes-style readiness probe. Not ready until every provider is configured."""
    missing = [
        field_name
        for fields in PROVIDER_CREDENTIAL_FIELDS.values()
        for field_name in fields
        if not (getattr(settings, field_name) or "").strip()
    ]

    if missing:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": missing},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
