# common/cache.py
import json
import logging
import os
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)

HOARDINGS_ALL_KEY = "hoardings:all"
HOARDING_KEY_PREFIX = "hoarding:"

_redis_client: Optional[redis.Redis] = None


def hoarding_key(hoarding_id: int) -> str:
    return f"{HOARDING_KEY_PREFIX}{hoarding_id}"


def get_redis_client() -> Optional[redis.Redis]:
    """
    Return a Redis client if REDIS_URL is configured, otherwise None.

    When Redis is not reachable caching is disabled for the call and the
    connection is retried on the next one.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None

    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis unavailable at %s, caching disabled: %s", redis_url, exc)
        return None

    _redis_client = client
    return _redis_client


def _drop_client(exc: redis.RedisError) -> None:
    """Forget a client whose connection failed; the next call reconnects."""
    global _redis_client
    logger.warning("Redis call failed, caching disabled until reconnect: %s", exc)
    _redis_client = None


def get_cached_json(key: str) -> Optional[Any]:
    client = get_redis_client()
    if client is None:
        return None

    try:
        raw = client.get(key)
    except redis.RedisError as exc:
        _drop_client(exc)
        return None
    if raw is None:
        return None
    return json.loads(raw)


def set_cached_json(key: str, value: Any, ttl_seconds: int = 60) -> None:
    client = get_redis_client()
    if client is None:
        return

    try:
        client.setex(key, ttl_seconds, json.dumps(value, default=str))
    except redis.RedisError as exc:
        _drop_client(exc)


def delete_prefix(prefix: str) -> None:
    """
    Delete all keys starting with prefix.
    Example: prefix='hoarding:42' or 'hoardings:'.
    """
    client = get_redis_client()
    if client is None:
        return

    try:
        for k in client.scan_iter(prefix + "*"):
            client.delete(k)
    except redis.RedisError as exc:
        _drop_client(exc)


def invalidate_hoarding(hoarding_id: int) -> None:
    """Drop the cached detail of one hoarding and the cached listing."""
    delete_prefix(hoarding_key(hoarding_id))
    delete_prefix(HOARDINGS_ALL_KEY)
