"""Redis-backed key-value store."""

import redis.asyncio as redis


class RedisKeyValueStore:
    """Redis implementation of KeyValueStore using SET ... EX."""

    name = "redis"

    def __init__(self, redis_client: redis.Redis) -> None:
        """Initialize store.

        Args:
            redis_client: Async Redis client created with decode_responses=True
        """
        self._redis = redis_client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        """Create store from a redis:// URL."""
        return cls(redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        value = await self._redis.get(key)
        if value is None:
            return None
        return str(value)

    async def set(self, key: str, value: str, ex: int) -> None:
        await self._redis.set(key, value, ex=ex)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._redis.delete(*keys))

    async def ping(self) -> bool:
        """Check connectivity."""
        return bool(await self._redis.ping())
