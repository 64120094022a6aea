"""
Distributed spin-lock on top of the store's set-if-absent primitive.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Optional

from .errors import AcquireTimeoutError, StoreError
from .logging import get_logger
from .metrics import CacheMetrics
from .store import KeyValueStore

LOCK_MARKER = "1"


@dataclass
class LockAcquisition:
    """Outcome of a successful acquire."""
    lock_key: str
    attempts: int
    elapsed_ms: float
    acquired: bool = True


class SpinLock:
    """Polls ``set_if_absent`` until the lock is taken or the deadline passes.

    Waits between attempts are drawn uniformly from
    ``[retry_min_ms, retry_max_ms]`` so that competing callers drift apart
    instead of hitting the store in lockstep. The lock token carries its own
    expiry, so a holder that dies without releasing only blocks others for
    ``lock_ttl_ms``.
    """

    def __init__(self,
                 store: KeyValueStore,
                 retry_min_ms: int = 10,
                 retry_max_ms: int = 30,
                 metrics: Optional[CacheMetrics] = None):
        if retry_min_ms <= 0 or retry_min_ms > retry_max_ms:
            raise ValueError("retry interval must satisfy 0 < retry_min_ms <= retry_max_ms")
        self.store = store
        self.retry_min_ms = retry_min_ms
        self.retry_max_ms = retry_max_ms
        self.metrics = metrics or CacheMetrics()
        self.logger = get_logger("coal.lock")

    def _retry_delay(self) -> float:
        """Jittered wait before the next attempt, in seconds."""
        return random.uniform(self.retry_min_ms, self.retry_max_ms) / 1000.0

    async def acquire(self, lock_key: str, lock_ttl_ms: int, timeout_ms: float) -> LockAcquisition:
        """Take the lock or raise ``AcquireTimeoutError`` once ``timeout_ms`` has passed."""
        attempts = 0
        start = time.monotonic()

        while True:
            elapsed_ms = (time.monotonic() - start) * 1000.0

            # the first attempt always runs, even with a zero timeout
            if attempts and elapsed_ms > timeout_ms:
                self.metrics.record_lock_timeout()
                self.logger.warning(
                    "Lock acquire timed out",
                    lock_key=lock_key,
                    attempts=attempts,
                    elapsed_ms=round(elapsed_ms, 4),
                    timeout_ms=timeout_ms
                )
                raise AcquireTimeoutError(
                    f"Couldn't obtain lock in {timeout_ms} ms",
                    details={
                        "lock_key": lock_key,
                        "attempts": attempts,
                        "elapsed_ms": round(elapsed_ms, 4),
                        "timeout_ms": timeout_ms
                    }
                )

            attempts += 1
            try:
                acquired = await self.store.set_if_absent(lock_key, LOCK_MARKER, lock_ttl_ms)
            except StoreError:
                self.metrics.record_store_error("set_if_absent")
                raise

            self.logger.debug(
                "Lock attempt",
                lock_key=lock_key,
                attempt=attempts,
                elapsed_ms=round(elapsed_ms, 4)
            )

            if acquired:
                elapsed_ms = (time.monotonic() - start) * 1000.0
                self.metrics.record_lock_acquired(attempts, elapsed_ms)
                self.logger.debug(
                    "Lock obtained",
                    lock_key=lock_key,
                    attempts=attempts,
                    elapsed_ms=round(elapsed_ms, 4)
                )
                return LockAcquisition(
                    lock_key=lock_key,
                    attempts=attempts,
                    elapsed_ms=round(elapsed_ms, 4)
                )

            await asyncio.sleep(self._retry_delay())

    async def release(self, lock_key: str) -> None:
        """Delete the lock token; a missing or expired token is fine."""
        try:
            removed = await self.store.delete(lock_key)
        except StoreError:
            self.metrics.record_store_error("delete")
            raise
        self.logger.debug("Lock released", lock_key=lock_key, removed=removed)
