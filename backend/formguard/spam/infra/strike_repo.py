"""Redis persistence for spam strikes."""

from __future__ import annotations

from typing import Optional

from redis.asyncio import Redis

from formguard.infra.redis import RedisProxy
from formguard.spam.domain.strikes import StrikeStore


class RedisStrikeStore(StrikeStore):
    """Strike counters as plain Redis integers with a key TTL."""

    def __init__(self, redis: Redis | RedisProxy) -> None:
        self._redis = redis

    async def get(self, key: str) -> int:
        raw = await self._redis.get(key)
        if raw is None:
            return 0
        try:
            return int(raw)
        except (TypeError, ValueError):
            return 0

    async def increment_with_ttl(self, key: str, ttl_seconds: int) -> int:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, max(1, int(ttl_seconds)))
            count, _ = await pipe.execute()
        return int(count)

    async def clear(self, key: str) -> None:
        await self._redis.delete(key)

    async def ttl(self, key: str) -> Optional[int]:
        remaining = await self._redis.ttl(key)
        if remaining is None or remaining < 0:
            return None
        return int(remaining)
