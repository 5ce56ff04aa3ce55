"""
Redis access shared by the cache helpers and the rate limiter.

Values are stored as JSON. Redis is optional: when it cannot be reached
the helpers behave like an always-empty cache and callers fall through
to the database.
"""
import json
import logging
from typing import Optional, Any
import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError
from core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Shared client, connected lazily. None while Redis is unreachable."""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        client.ping()
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis unavailable, continuing without cache: {e}")
        return None

    logger.info("Redis connection established")
    _redis_client = client
    return _redis_client


def get_cache(key: str) -> Optional[Any]:
    client = get_redis_client()
    if not client:
        return None

    try:
        raw = client.get(key)
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache read failed for {key}: {e}")
        return None
    return json.loads(raw) if raw is not None else None


def set_cache(key: str, value: Any, ttl: int) -> bool:
    client = get_redis_client()
    if not client:
        return False

    try:
        client.setex(key, ttl, json.dumps(value, default=str))
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache write failed for {key}: {e}")
        return False
    return True


def delete_cache(key: str) -> bool:
    client = get_redis_client()
    if not client:
        return False

    try:
        client.delete(key)
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache delete failed for {key}: {e}")
        return False
    return True
