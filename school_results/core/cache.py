# school_results/core/cache.py
"""Redis caching implementation."""
import logging
import pickle
from datetime import timedelta
from typing import Any, Optional, Union

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CacheManager:
    """Best-effort cache; every failure degrades to a cache miss.

    With no ``redis_url`` configured the manager is disabled and all calls
    are no-ops.
    """

    def __init__(self, redis_url: Optional[str] = None, prefix: str = "school_results"):
        self.redis_url = redis_url
        self.prefix = prefix
        self.redis: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return bool(self.redis_url)

    def make_key(self, *parts: Any) -> str:
        return ":".join([self.prefix, *(str(part) for part in parts)])

    async def connect(self):
        """Initialize Redis connection."""
        if self.enabled and not self.redis:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=False
            )

    async def close(self):
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        if not self.enabled:
            return None
        if not self.redis:
            await self.connect()

        try:
            value = await self.redis.get(key)
            if value:
                return pickle.loads(value)
        except Exception as e:
            logger.warning(f"Cache get failed for {key}: {e}")
        return None

    async def set(
        self,
        key: str,
        value: Any,
        expire: Optional[Union[int, timedelta]] = None
    ) -> bool:
        """Set value in cache."""
        if not self.enabled:
            return False
        if not self.redis:
            await self.connect()

        try:
            serialized = pickle.dumps(value)
            if expire:
                if isinstance(expire, timedelta):
                    expire = int(expire.total_seconds())
                return bool(await self.redis.setex(key, expire, serialized))
            return bool(await self.redis.set(key, serialized))
        except Exception as e:
            logger.warning(f"Cache set failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        if not self.enabled:
            return False
        if not self.redis:
            await self.connect()

        try:
            return bool(await self.redis.delete(key))
        except Exception as e:
            logger.warning(f"Cache delete failed for {key}: {e}")
            return False
