"""Redis client and result caching for the onboarding service.

One shared connection pool serves both progress persistence and the
uniqueness-check cache.
"""

import functools
import hashlib
import json
import logging
from typing import Callable, Optional

import redis.asyncio as redis

from clinic_onboarding.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def cache_key(*args, **kwargs) -> str:
    """Deterministic hash of the call arguments."""
    if not args and not kwargs:
        return "default"

    key_data = json.dumps({"args": args, "kwargs": kwargs}, sort_keys=True)
    return hashlib.md5(key_data.encode()).hexdigest()


def cached(ttl: int = 300, prefix: str = "cache"):
    """Cache a coroutine's JSON-serializable result in Redis.

    Only keyword arguments of simple types take part in the key; positional
    arguments are usually injected clients and are skipped.

    Cache keys: {prefix}:{function_name}:{kwargs_hash}
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            key_kwargs = {
                k: v for k, v in kwargs.items()
                if not k.startswith("_") and isinstance(v, (int, str, bool, float, type(None)))
            }
            key = f"{prefix}:{func.__name__}:{cache_key(**key_kwargs)}"

            try:
                redis_client = await get_redis()
                cached_value = await redis_client.get(key)
                if cached_value:
                    logger.debug(f"Cache HIT: {key}")
                    return json.loads(cached_value)
                logger.debug(f"Cache MISS: {key}")
            except redis.RedisError as e:
                logger.warning(f"Redis error (falling back to uncached): {e}")
                return await func(*args, **kwargs)

            result = await func(*args, **kwargs)
            if result is None:
                return result
            try:
                await redis_client.setex(key, ttl, json.dumps(result))
            except redis.RedisError as e:
                logger.warning(f"Failed to cache {key}: {e}")
            return result

        return wrapper

    return decorator
