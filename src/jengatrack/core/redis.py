"""
Redis client utilities.

Redis is optional here: it only backs the WhatsApp interaction log so that
several web workers share one debug view.
"""

import functools

import redis

from jengatrack.core.settings import get_settings


@functools.lru_cache()
def get_redis_client() -> redis.Redis | None:
    """
    Get Redis client (cached), or None when REDIS_URL is not configured.

    This function lazily initializes the Redis client to avoid import-time connections.
    """
    url = get_settings().REDIS_URL
    if not url:
        return None
    return redis.from_url(url, decode_responses=True)
