"""
Redis Counter Store
===================
Redis-backed counter store. Counter batches run in a MULTI/EXEC transaction
so the five usage counters of one call move together.
"""

from typing import List, Optional, Sequence, Tuple

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..errors import StoreUnavailable
from .base import CounterStore

logger = structlog.get_logger(__name__)


def _decode(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisCounterStore(CounterStore):
    """
    Counter store on top of an async Redis client.

    Store failures are never masked: every ``RedisError`` becomes
    ``StoreUnavailable`` so the guard fails closed.
    """

    def __init__(self, redis_client: Redis, scan_count: int = 500):
        """
        Args:
            redis_client: Async Redis client (shared, long-lived)
            scan_count: SCAN page size hint
        """
        self.redis = redis_client
        self.scan_count = scan_count

    @classmethod
    def from_url(cls, url: str) -> "RedisCounterStore":
        """Create a store with its own connection pool."""
        return cls(Redis.from_url(url, decode_responses=True))

    async def incr_many(self, entries: Sequence[Tuple[str, int]]) -> List[int]:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for key, ttl in entries:
                    pipe.incr(key)
                    pipe.expire(key, ttl)
                results = await pipe.execute()
        except RedisError as e:
            logger.error("counter_increment_failed", error=str(e), keys=len(entries))
            raise StoreUnavailable(str(e), operation="incr_many") from e

        # Results alternate INCR value / EXPIRE flag
        return [int(value) for value in results[0::2]]

    async def get_many(self, keys: Sequence[str]) -> List[int]:
        if not keys:
            return []
        try:
            values = await self.redis.mget(list(keys))
        except RedisError as e:
            logger.error("counter_read_failed", error=str(e), keys=len(keys))
            raise StoreUnavailable(str(e), operation="get_many") from e
        return [int(_decode(value)) if value is not None else 0 for value in values]

    async def push_bounded(self, key: str, value: str, max_len: int, ttl: int) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.lpush(key, value)
                pipe.ltrim(key, 0, max_len - 1)
                pipe.expire(key, ttl)
                await pipe.execute()
        except RedisError as e:
            logger.error("list_push_failed", key=key, error=str(e))
            raise StoreUnavailable(str(e), operation="push_bounded") from e

    async def list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        try:
            values = await self.redis.lrange(key, start, end)
        except RedisError as e:
            raise StoreUnavailable(str(e), operation="list_range") from e
        return [_decode(value) for value in values]

    async def list_lengths(self, keys: Sequence[str]) -> List[int]:
        if not keys:
            return []
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                for key in keys:
                    pipe.llen(key)
                results = await pipe.execute()
        except RedisError as e:
            raise StoreUnavailable(str(e), operation="list_lengths") from e
        return [int(value) for value in results]

    async def scan_keys(self, pattern: str, limit: Optional[int] = None) -> List[str]:
        keys: List[str] = []
        try:
            async for key in self.redis.scan_iter(match=pattern, count=self.scan_count):
                keys.append(_decode(key))
                if limit is not None and len(keys) >= limit:
                    break
        except RedisError as e:
            raise StoreUnavailable(str(e), operation="scan_keys") from e
        return keys

    async def delete(self, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        try:
            return int(await self.redis.delete(*keys))
        except RedisError as e:
            raise StoreUnavailable(str(e), operation="delete") from e

    async def ping(self) -> None:
        try:
            await self.redis.ping()
        except RedisError as e:
            raise StoreUnavailable(str(e), operation="ping") from e

    async def close(self) -> None:
        await self.redis.aclose()
