"""Key-value stores with per-key expiry.

Redis is used whenever REDIS_URL is configured. Without it an in-process
store is used, which only works for a single application instance.
"""

import time
from typing import Callable, Optional

import redis.asyncio as redis
import structlog

from animegen.core.config import Settings

logger = structlog.get_logger(__name__)


class RedisKeyValueStore:
    """Key-value store backed by Redis."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.client.set(key, value, ex=max(1, ttl_seconds))

    async def close(self) -> None:
        await self.client.aclose()


class InMemoryKeyValueStore:
    """Process-local key-value store with lazy expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + max(1, ttl_seconds))

    async def close(self) -> None:
        self._data.clear()


def create_kv_store(settings: Settings) -> RedisKeyValueStore | InMemoryKeyValueStore:
    """Build the configured key-value store."""
    if settings.redis_url:
        logger.info("kv_store.redis", url=settings.redis_url.split("@")[-1])
        return RedisKeyValueStore.from_url(settings.redis_url)

    logger.warning("kv_store.in_memory", reason="REDIS_URL not set")
    return InMemoryKeyValueStore()
