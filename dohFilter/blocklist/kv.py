"""Key-value backends for hashed blocklist entries."""
from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from dohFilter.errors import StoreUnavailable
from dohFilter.logging_config import get_logger

logger = get_logger("store")


class KeyValueStore(Protocol):
    async def put(self, key: str, value: str, ttl: int) -> None:
        ...

    async def get(self, key: str) -> Optional[str]:
        ...

    async def close(self) -> None:
        ...


class MemoryKV:
    """In-process map with per-key expiry. Used in tests and single-process setups."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60.0,
    ) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval
        self._data: Dict[str, Tuple[float, str]] = {}

    async def put(self, key: str, value: str, ttl: int) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self.purge_expired()
        self._data[key] = (now + ttl, value)

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._data.items() if now >= expires_at]
        for key in expired:
            del self._data[key]
        self._next_sweep = now + self._sweep_interval
        return len(expired)

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return value

    async def close(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class RedisKV:
    """Redis-backed store; expiry is delegated to Redis via ``SET ... EX``."""

    def __init__(self, redis_url: str) -> None:
        self.redis_url = redis_url
        self._client: Optional[aioredis.Redis] = None

    def _redacted_url(self) -> str:
        return self.redis_url.split("@")[-1] if "@" in self.redis_url else self.redis_url

    async def connect(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(self.redis_url, decode_responses=True)
            logger.info(
                "Redis client created",
                extra={"url": self._redacted_url(), "backend": "redis", "outcome": "success"}
            )
        return self._client

    async def put(self, key: str, value: str, ttl: int) -> None:
        client = await self.connect()
        try:
            await client.set(key, value, ex=ttl)
        except RedisError as exc:
            raise StoreUnavailable(f"Redis SET failed: {exc}") from exc

    async def get(self, key: str) -> Optional[str]:
        client = await self.connect()
        try:
            return await client.get(key)
        except RedisError as exc:
            raise StoreUnavailable(f"Redis GET failed: {exc}") from exc

    async def close(self) -> None:
        if self._client:
            try:
                await self._client.aclose()
                logger.info("Redis connection closed", extra={"outcome": "success"})
            except RedisError as exc:
                logger.warning(
                    f"Error closing Redis connection: {exc}",
                    extra={"outcome": "error", "error_type": type(exc).__name__}
                )
            finally:
                self._client = None
