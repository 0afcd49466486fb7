# checkcx/db/redis.py
import redis.asyncio as redis
import json
from typing import Optional, Any

from checkcx.core.config import settings
from checkcx.core.logging import get_logger

logger = get_logger("redis")

# Global Redis connection pool
_redis_pool: Optional[redis.ConnectionPool] = None
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create the Redis client"""
    global _redis_pool, _redis_client

    if _redis_client is None:
        if not settings.redis_enabled:
            raise RuntimeError("Redis is disabled in configuration")

        connection_kwargs = {
            "max_connections": settings.redis_max_connections,
            "retry_on_timeout": True,
            "socket_timeout": 5,
            "socket_connect_timeout": 5,
            "health_check_interval": 30,
            "decode_responses": True,
        }
        if settings.redis_password:
            connection_kwargs["password"] = settings.redis_password

        redis_url = settings.redis_url
        if not redis_url.startswith(("redis://", "rediss://")):
            redis_url = f"redis://{redis_url}"

        _redis_pool = redis.ConnectionPool.from_url(redis_url, **connection_kwargs)
        _redis_client = redis.Redis(connection_pool=_redis_pool)
        logger.info("Redis connection pool created")

    return _redis_client


async def close_redis():
    """Close Redis connections"""
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None

    logger.info("Redis connections closed")


class RedisCache:
    """JSON get/set with TTL; a no-op when Redis is disabled or unreachable"""

    async def get(self, key: str) -> Optional[Any]:
        if not settings.redis_enabled:
            return None

        try:
            client = await get_redis()
            value = await client.get(key)
            return None if value is None else json.loads(value)
        except Exception as e:
            logger.warning("Cache get failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl: int = 60) -> bool:
        if not settings.redis_enabled:
            return False

        try:
            client = await get_redis()
            await client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except Exception as e:
            logger.warning("Cache set failed", key=key, error=str(e))
            return False

    async def delete_pattern(self, pattern: str) -> int:
        if not settings.redis_enabled:
            return 0

        try:
            client = await get_redis()
            keys = await client.keys(pattern)
            return await client.delete(*keys) if keys else 0
        except Exception as e:
            logger.warning("Cache pattern delete failed", pattern=pattern, error=str(e))
            return 0


# Global cache instance
cache = RedisCache()
