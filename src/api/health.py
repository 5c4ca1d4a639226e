"""
Health check endpoints - used by load balancers and container healthchecks.

- GET /health       - basic liveness (always 200 if app running)
- GET /health/ready - readiness check (DB + Redis + webhook poller heartbeat)
"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from src.database import get_db
from src.utils.heartbeat import get_redis, read_heartbeat
from src.workers.webhook_poller import WORKER_NAME as POLLER_WORKER_NAME

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

APP_VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """Basic liveness check - returns 200 if the app is running."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": APP_VERSION,
    }


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
):
    """
    Readiness check - database and Redis must answer. The poller heartbeat is
    reported but does not affect readiness (it is written after the first cycle).
    """
    checks = {"database": False, "redis": False}
    poller_heartbeat = None

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error("Database health check failed: %s", str(e))

    try:
        redis = await get_redis()
        await redis.ping()
        checks["redis"] = True
        poller_heartbeat = await read_heartbeat(POLLER_WORKER_NAME)
    except Exception as e:
        logger.warning("Redis health check failed: %s", str(e))

    all_healthy = all(checks.values())
    return {
        "status": "ready" if all_healthy else "degraded",
        "checks": checks,
        "workers": {POLLER_WORKER_NAME: poller_heartbeat},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
