"""Redis client and cache helpers for catalog and clinic settings."""

import json
from typing import Any, cast

import redis
import structlog

from app.config import settings

logger = structlog.get_logger(__name__)

# Global Redis client instance
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client instance.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        client = get_redis_client()
        client.ping()
        return True
    except Exception:
        return False


def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


def clinic_cache_key(clinic_id: str, *parts: Any) -> str:
    """Build a cache key scoped to one clinic's data."""
    return ":".join(["clinic", str(clinic_id), *(str(p) for p in parts)])


class CacheManager:
    """
    JSON cache over Redis.

    The cache is an optimisation only: every Redis error is logged and
    treated as a miss so a Redis outage never fails a booking.
    """

    def __init__(self, redis_client: redis.Redis):
        """Initialize cache manager with Redis client."""
        self.redis = redis_client

    def get_json(self, key: str) -> Any | None:
        """
        Get JSON value from cache and deserialize.

        Args:
            key: Cache key

        Returns:
            Deserialized object or None on miss or error
        """
        try:
            value = cast(str | None, self.redis.get(key))
        except redis.RedisError as e:
            logger.debug("cache_get_failed", key=key, error=str(e))
            return None

        if not value:
            return None
        try:
            return json.loads(value)
        except ValueError:
            logger.debug("cache_value_corrupt", key=key)
            return None

    def set_json(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """
        Serialize and set JSON value in cache.

        Args:
            key: Cache key
            value: Value to serialize and cache
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        json_value = json.dumps(value, default=str)
        try:
            if ttl:
                self.redis.setex(key, ttl, json_value)
            else:
                self.redis.set(key, json_value)
            return True
        except redis.RedisError as e:
            logger.debug("cache_set_failed", key=key, error=str(e))
            return False


def get_cache_manager() -> CacheManager:
    """Dependency returning a cache manager over the shared Redis client."""
    return CacheManager(get_redis_client())
