"""
Worker heartbeats in Redis.

Background workers stamp "driverdesk:worker_health:<name>" every cycle; the
readiness endpoint reads them back. A Redis outage never stops a worker.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

HEARTBEAT_KEY_PREFIX = "driverdesk:worker_health:"

# Redis client (lazily initialized)
_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from src.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
    _redis_client = None


async def write_heartbeat(worker: str, ttl_seconds: int = 120) -> None:
    """Store heartbeat timestamp in Redis."""
    try:
        redis = await get_redis()
        await redis.set(
            f"{HEARTBEAT_KEY_PREFIX}{worker}",
            datetime.now(timezone.utc).isoformat(),
            ex=ttl_seconds,
        )
    except Exception as e:
        logger.debug("Heartbeat write failed for %s: %s", worker, str(e))


async def read_heartbeat(worker: str) -> Optional[str]:
    redis = await get_redis()
    return await redis.get(f"{HEARTBEAT_KEY_PREFIX}{worker}")
