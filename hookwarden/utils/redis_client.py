"""
Redis connection helpers for cooldown state and health checks.
"""
import logging

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


def create_redis(url: str):
    """Create a Redis client. Connections are opened lazily on first command."""
    return aioredis.from_url(url, decode_responses=True)


async def close_redis(client) -> None:
    try:
        await client.aclose()
    except Exception as e:
        logger.debug("Redis close failed: %s", str(e))
