"""
Cache-aside orchestrator with stampede protection.
"""

import asyncio
import inspect
import math
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis

from .codec import decode, encode
from .config import CoalSettings
from .errors import InvalidArgumentError, StoreError
from .lock import LockAcquisition, SpinLock
from .logging import configure_logging, get_logger
from .metrics import CacheMetrics
from .store import KeyValueStore, RedisStore


class Coal:
    """Cache-aside over a key-value store.

    Reads go straight to the store. On a miss the caller's ``recompute``
    function runs once per key per instance (concurrent misses share the
    in-flight result), and the value is written through ``set``, which
    always holds the key's spin-lock while writing and always releases it.

    The store can be given directly, as a ``redis.asyncio.Redis`` client, or
    as a URL; otherwise ``settings.redis_url`` is used.
    """

    def __init__(self,
                 store: Optional[KeyValueStore] = None,
                 *,
                 client: Optional[redis.Redis] = None,
                 url: Optional[str] = None,
                 prefix: Optional[str] = None,
                 settings: Optional[CoalSettings] = None,
                 metrics: Optional[CacheMetrics] = None):
        self.settings = settings or CoalSettings()
        self.logger = get_logger("coal.cache")

        if store is not None:
            self.store = store
        elif client is not None:
            self.store = RedisStore(client)
        else:
            self.store = RedisStore.from_url(
                url or self.settings.redis_url,
                socket_timeout=self.settings.socket_timeout
            )

        self.prefix = prefix if prefix is not None else self.settings.prefix
        self.default_ttl = self.settings.default_ttl_seconds
        self.default_timeout_ms = self.settings.default_timeout_ms
        self.metrics = metrics or CacheMetrics()
        self.lock = SpinLock(
            self.store,
            retry_min_ms=self.settings.lock_retry_min_ms,
            retry_max_ms=self.settings.lock_retry_max_ms,
            metrics=self.metrics
        )

        self._inflight: Dict[str, asyncio.Future] = {}

    @classmethod
    def from_settings(cls, settings: CoalSettings, **kwargs) -> "Coal":
        """Build a cache from settings and configure logging at ``settings.log_level``."""
        configure_logging("coal", settings.log_level)
        return cls(settings=settings, **kwargs)

    async def __aenter__(self) -> "Coal":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def cache_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def lock_key(self, key: str) -> str:
        return f"{self.prefix}lock:{key}"

    @staticmethod
    def _validate_key(key: Any) -> None:
        if not isinstance(key, str) or not key:
            raise InvalidArgumentError(
                '"key" should be a non-empty string',
                details={"key_type": type(key).__name__}
            )

    def _resolve_ttl(self, ttl: Optional[float]) -> float:
        return self.default_ttl if ttl is None else ttl

    def _resolve_timeout(self, ttl: float, timeout: Optional[float]) -> float:
        """Explicit timeout, else a tenth of the TTL, else the fixed default."""
        if timeout is not None:
            return timeout
        if ttl > 0:
            return ttl * 1000 / 10
        return self.default_timeout_ms

    async def get(self,
                  key: str,
                  recompute: Optional[Callable[[], Any]] = None,
                  ttl: Optional[float] = None,
                  timeout: Optional[float] = None) -> Any:
        """Return the cached value, recomputing and caching it on a miss.

        Args:
            key: Cache key, without prefix.
            recompute: Sync or async zero-argument callable producing the value.
            ttl: Expiry in seconds for a recomputed value; ``<= 0`` never expires.
            timeout: Lock acquisition timeout in milliseconds.

        Returns:
            The decoded cached value, the freshly computed value, or ``None``
            on a miss without ``recompute``.
        """
        self._validate_key(key)
        if recompute is not None and not callable(recompute):
            raise InvalidArgumentError('"recompute" should be callable')

        try:
            stored = await self.store.get(self.cache_key(key))
        except StoreError:
            self.metrics.record_store_error("get")
            raise

        if stored is not None:
            self.metrics.record_hit()
            value = decode(stored)
            self.logger.debug("Cache hit", key=key)
            return value

        self.metrics.record_miss()
        self.logger.debug("Cache miss", key=key, recompute=recompute is not None)

        if recompute is None:
            return None

        return await self._recompute(key, recompute, ttl, timeout)

    async def _recompute(self, key: str, recompute: Callable[[], Any],
                         ttl: Optional[float], timeout: Optional[float]) -> Any:
        """Run ``recompute`` once for all concurrent misses on ``key``."""
        inflight = self._inflight.get(key)
        if inflight is not None:
            self.logger.debug("Joining in-flight recompute", key=key)
            return await asyncio.shield(inflight)

        task = asyncio.ensure_future(self._load(key, recompute, ttl, timeout))
        self._inflight[key] = task
        task.add_done_callback(lambda _: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    async def _load(self, key: str, recompute: Callable[[], Any],
                    ttl: Optional[float], timeout: Optional[float]) -> Any:
        self.metrics.record_recompute()
        result = recompute()
        if inspect.isawaitable(result):
            result = await result

        if result is None:
            self.logger.debug("Recompute returned nothing, not caching", key=key)
            return None

        self.logger.debug("Cache update", key=key)
        await self.set(key, result, ttl, timeout)
        return result

    async def set(self,
                  key: str,
                  value: Any,
                  ttl: Optional[float] = None,
                  timeout: Optional[float] = None) -> LockAcquisition:
        """Write ``value`` under the key's spin-lock.

        ``ttl`` is in seconds (``<= 0`` means no expiry); ``timeout`` bounds
        lock acquisition in milliseconds. Returns the lock statistics.
        """
        self._validate_key(key)
        if value is None:
            raise InvalidArgumentError('"value" should be defined')

        payload = encode(value)
        ttl = self._resolve_ttl(ttl)
        timeout_ms = self._resolve_timeout(ttl, timeout)
        # Redis rejects PX 0, so expiries are at least 1 ms
        lock_ttl_ms = max(1, math.ceil(timeout_ms) + self.settings.lock_ttl_padding_ms)
        ttl_ms = max(1, math.ceil(ttl * 1000)) if ttl > 0 else None

        cache_key = self.cache_key(key)
        lock_key = self.lock_key(key)

        acquisition = await self.lock.acquire(lock_key, lock_ttl_ms, timeout_ms)
        try:
            await self.store.set(cache_key, payload, ttl_ms)
        except BaseException as write_error:
            if isinstance(write_error, StoreError):
                self.metrics.record_store_error("set")
            await self._release_after_failure(lock_key, write_error)
            raise

        self.metrics.record_write()
        self.logger.debug("Cache set", key=cache_key, ttl_ms=ttl_ms)
        await self.lock.release(lock_key)
        return acquisition

    async def _release_after_failure(self, lock_key: str, write_error: BaseException) -> None:
        """Release the lock without masking the write error that got us here."""
        try:
            await self.lock.release(lock_key)
        except StoreError as release_error:
            self.logger.error(
                "Lock release failed after write error",
                lock_key=lock_key,
                write_error=str(write_error),
                error=str(release_error)
            )

    async def delete(self, key: str) -> int:
        """Remove the cache entry (never the lock); returns the number removed."""
        self._validate_key(key)
        try:
            removed = await self.store.delete(self.cache_key(key))
        except StoreError:
            self.metrics.record_store_error("delete")
            raise
        self.logger.debug("Cache delete", key=key, removed=removed)
        return removed

    async def health_check(self) -> bool:
        """Check store health."""
        try:
            return await self.store.ping()
        except StoreError:
            return False

    async def close(self) -> None:
        await self.store.close()
