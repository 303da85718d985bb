"""
Redis-backed cache for read-mostly projections (today's quests).

The cache is advisory: every failure is logged and reported as a miss, so the
engines fall back to the database.
"""
import json
import logging
from typing import Any, Optional, Protocol

import redis

from careerquest.core.config import REDIS_SOCKET_TIMEOUT, REDIS_URL

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def setex(self, key: str, ttl_seconds: int, value: Any) -> bool: ...

    def delete(self, key: str) -> bool: ...


class RedisCache:
    """JSON values in Redis with a TTL."""

    def __init__(self, redis_url: str = None, prefix: str = "careerquest:"):
        self.redis_url = redis_url or REDIS_URL
        self.prefix = prefix
        self._client = None

    @property
    def client(self) -> redis.Redis:
        """Lazy initialization of Redis client."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_timeout=REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
            )
        return self._client

    def get(self, key: str) -> Optional[Any]:
        try:
            data = self.client.get(self.prefix + key)
        except redis.RedisError as e:
            logger.warning(f"[CACHE] get failed key={key} error={e}")
            return None
        if data is None:
            logger.debug(f"[CACHE] miss key={key}")
            return None
        try:
            return json.loads(data)
        except ValueError:
            logger.warning(f"[CACHE] undecodable value key={key}")
            return None

    def setex(self, key: str, ttl_seconds: int, value: Any) -> bool:
        try:
            self.client.setex(self.prefix + key, ttl_seconds, json.dumps(value, default=str))
            return True
        except redis.RedisError as e:
            logger.warning(f"[CACHE] set failed key={key} error={e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            self.client.delete(self.prefix + key)
            return True
        except redis.RedisError as e:
            logger.warning(f"[CACHE] delete failed key={key} error={e}")
            return False


_default_cache: Optional[RedisCache] = None


def get_cache() -> CacheStore:
    """FastAPI dependency; one shared client per process."""
    global _default_cache
    if _default_cache is None:
        _default_cache = RedisCache()
    return _default_cache
