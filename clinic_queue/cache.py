"""
Redis caching utilities for frequently read, rarely written data
"""
import json
import logging
from typing import Any, Optional

import redis

from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)


class Cache:
    """Redis cache wrapper with JSON serialization; every miss is a plain None"""

    def __init__(self, client_factory=get_redis_client):
        self._client_factory = client_factory

    def _get_client(self) -> Optional[redis.Redis]:
        return self._client_factory()

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except (redis.RedisError, ValueError) as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.setex(key, ttl, json.dumps(value))
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except (redis.RedisError, TypeError) as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete value from cache"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.delete(key)
            logger.debug(f"✅ Cache DELETE: {key}")
            return True
        except redis.RedisError as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False


# Global cache instance
cache = Cache()

CLINIC_POLICY_KEY = "clinic_policy"


def get_clinic_policy_cached() -> Optional[dict]:
    """Get normalized clinic policy from cache"""
    return cache.get(CLINIC_POLICY_KEY)


def set_clinic_policy_cached(policy: dict, ttl: int = 300) -> bool:
    """Set normalized clinic policy in cache"""
    return cache.set(CLINIC_POLICY_KEY, policy, ttl)


def invalidate_clinic_policy_cache() -> bool:
    """Invalidate clinic policy cache when settings are saved"""
    return cache.delete(CLINIC_POLICY_KEY)
