import functools
from typing import Any, Callable, Optional, Type

from pydantic import BaseModel

from checkcx.db.redis import cache
from checkcx.core.logging import get_logger

logger = get_logger("cache")


def redis_cache(ttl: int = 60, key_prefix: str = "", model: Optional[Type[BaseModel]] = None):
    """
    Redis cache decorator for async service methods.

    Usage:
    @redis_cache(ttl=15, key_prefix="dashboard", model=DashboardData)
    async def load(self, trend_period: str):
        return payload

    Pydantic results are stored as JSON and rebuilt with ``model`` on a hit.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            # Skip 'self' parameter for instance methods
            cache_args = args[1:] if args and hasattr(args[0], '__dict__') else args

            cache_key_parts = [key_prefix, func.__name__] + [str(arg) for arg in cache_args]
            cache_key_parts += [f"{k}={v}" for k, v in sorted(kwargs.items())]
            cache_key = ":".join(filter(None, cache_key_parts))

            cached_result = await cache.get(cache_key)
            if cached_result is not None:
                logger.debug("Cache hit", key=cache_key)
                return model.model_validate(cached_result) if model else cached_result

            result = await func(*args, **kwargs)
            if result is None:
                return result

            cache_data = result.model_dump(mode="json") if isinstance(result, BaseModel) else result
            await cache.set(cache_key, cache_data, ttl=ttl)
            return result
        return wrapper
    return decorator
