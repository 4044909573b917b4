from typing import Any

import redis.asyncio as redis

RedisClient = redis.Redis


def get_redis_client(redis_url: str, **kwargs: Any) -> redis.Redis:
    """Async Redis client with string responses; callers treat every call as best-effort."""
    kwargs.setdefault("socket_timeout", 2.0)
    kwargs.setdefault("socket_connect_timeout", 2.0)
    return redis.from_url(redis_url, decode_responses=True, **kwargs)
