# roomchat/core/cache.py
"""Shared Redis client used by sessions, presence and rate limiting."""
import logging
from typing import Callable, Optional
import redis.asyncio as redis
from fastapi import Request

logger = logging.getLogger(__name__)


class CacheManager:
    def __init__(self, redis_url: str, client_factory: Optional[Callable[[], redis.Redis]] = None):
        self.redis_url = redis_url
        self.client_factory = client_factory
        self.redis: Optional[redis.Redis] = None

    async def connect(self) -> redis.Redis:
        """Initialize Redis connection."""
        if not self.redis:
            if self.client_factory:
                self.redis = self.client_factory()
            else:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
            logger.info("Redis client initialized")
        return self.redis

    async def disconnect(self):
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis client closed")

    @property
    def client(self) -> redis.Redis:
        if not self.redis:
            raise RuntimeError("Redis client used before CacheManager.connect()")
        return self.redis

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""
        deleted = 0
        async for key in self.client.scan_iter(match=pattern):
            deleted += await self.client.delete(key)
        return deleted


async def get_cache(request: Request) -> CacheManager:
    """Dependency to get cache instance."""
    return request.app.state.cache
