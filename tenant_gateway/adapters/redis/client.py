"""Shared redis.asyncio client for the state store."""
import logging
from typing import Optional

import redis.asyncio as redis

from tenant_gateway.core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis(url: Optional[str] = None) -> redis.Redis:
    """Process-wide client; every gateway worker shares one connection pool."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            url or settings.REDIS_URL,
            decode_responses=True,
            health_check_interval=30,
        )
        logger.info("redis_client_created")
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_client_closed")
