"""
Key-value store adapters.

The cache only needs four primitives from its store; ``KeyValueStore`` names
them and ``RedisStore`` provides them on top of ``redis.asyncio``. Connection
handling, URL parsing, auth and database selection stay with redis-py.
"""

from typing import Optional, Protocol, Union, runtime_checkable

import redis.asyncio as redis
from redis.exceptions import RedisError

from .errors import StoreError
from .logging import get_logger


@runtime_checkable
class KeyValueStore(Protocol):
    """Operations the cache requires from its backing store."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set_if_absent(self, key: str, value: str, ttl_ms: int) -> bool: ...

    async def set(self, key: str, value: str, ttl_ms: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> int: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


def _as_text(value: Optional[Union[str, bytes]]) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisStore:
    """``KeyValueStore`` backed by a ``redis.asyncio.Redis`` client."""

    def __init__(self, client: redis.Redis, owns_client: bool = False):
        self.client = client
        self.owns_client = owns_client
        self.logger = get_logger("coal.store")

    @classmethod
    def from_url(cls, redis_url: str, socket_timeout: float = 5.0) -> "RedisStore":
        """Create a store with its own connection pool."""
        client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
            retry_on_timeout=True,
            health_check_interval=30
        )
        return cls(client, owns_client=True)

    def _fail(self, operation: str, key: Optional[str], error: Exception) -> StoreError:
        self.logger.error("Store operation failed", operation=operation, key=key, error=str(error))
        return StoreError(
            f"Redis {operation} failed: {error}",
            details={"operation": operation, "key": key}
        )

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.client.get(key)
        except (RedisError, OSError) as e:
            raise self._fail("get", key, e) from e
        return _as_text(value)

    async def set_if_absent(self, key: str, value: str, ttl_ms: int) -> bool:
        """Atomic ``SET key value NX PX ttl_ms``; True when the key was written."""
        try:
            result = await self.client.set(key, value, nx=True, px=ttl_ms)
        except (RedisError, OSError) as e:
            raise self._fail("set_if_absent", key, e) from e
        return bool(result)

    async def set(self, key: str, value: str, ttl_ms: Optional[int] = None) -> None:
        try:
            if ttl_ms is None:
                await self.client.set(key, value)
            else:
                await self.client.set(key, value, px=ttl_ms)
        except (RedisError, OSError) as e:
            raise self._fail("set", key, e) from e

    async def delete(self, key: str) -> int:
        try:
            return int(await self.client.delete(key))
        except (RedisError, OSError) as e:
            raise self._fail("delete", key, e) from e

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as e:
            raise self._fail("ping", None, e) from e

    async def close(self) -> None:
        """Close the client if this store created it."""
        if self.owns_client:
            await self.client.aclose()
            self.logger.info("Redis store closed")
