"""Redis connection and the read-through cache used by the directory and tenant store.

The cache is optional. Every command failure is absorbed: reads behave as
misses and writes are dropped, so the store stays the source of truth.
"""

import json
from typing import Any, cast

import redis
import structlog

from clinicflow.config import settings

logger = structlog.get_logger(__name__)

_redis_client: redis.Redis | None = None

REVOKED_PREFIX = "blacklist:"


def get_redis_client() -> redis.Redis:
    """Shared client, created on first use."""
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
    """Ping the cache; used by startup and the readiness probe."""
    try:
        get_redis_client().ping()
    except redis.RedisError as e:
        logger.warning("cache_ping_failed", error=str(e))
        return False
    return True


def close_redis_connection() -> None:
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class CacheManager:
    """Best-effort key/value cache over Redis."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    def _failed(self, command: str, key: str, exc: Exception) -> None:
        logger.debug("cache_command_failed", command=command, key=key, error=str(exc))

    def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """
        Store a raw string value.

        Args:
            key: Cache key
            value: Value to store
            ttl: Expiry in seconds; no expiry when omitted

        Returns:
            False when the write was dropped
        """
        try:
            if ttl:
                self.redis.setex(key, ttl, value)
            else:
                self.redis.set(key, value)
        except Exception as e:
            self._failed("set", key, e)
            return False
        return True

    def delete(self, key: str) -> bool:
        """Drop a key after the underlying record changed."""
        try:
            self.redis.delete(key)
        except Exception as e:
            self._failed("delete", key, e)
            return False
        return True

    def exists(self, key: str) -> bool:
        try:
            return bool(self.redis.exists(key))
        except Exception as e:
            self._failed("exists", key, e)
            return False

    def get_json(self, key: str) -> Any | None:
        """Decoded JSON value, or None on a miss or a failure."""
        try:
            value = cast(str | None, self.redis.get(key))
        except Exception as e:
            self._failed("get", key, e)
            return None
        if not value:
            return None
        try:
            return json.loads(value)
        except ValueError:
            # Corrupt entry; let the caller reload it from the store
            self.delete(key)
            return None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Encode ``value`` as JSON (datetimes as strings) and store it."""
        return self.set(key, json.dumps(value, default=str), ttl=ttl)

    def revoke(self, token: str, ttl: int) -> bool:
        """Remember a revoked session token until it would have expired anyway."""
        return self.set(f"{REVOKED_PREFIX}{token}", "1", ttl=ttl)

    def is_revoked(self, token: str) -> bool:
        return self.exists(f"{REVOKED_PREFIX}{token}")
