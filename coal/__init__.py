"""
Coal: cache-aside over Redis with stampede protection.

When a cached value is missing, only one caller recomputes it; concurrent
writers for the same key serialize through a short-lived spin-lock taken with
Redis ``SET NX PX``. Modules:

- cache: ``Coal`` orchestrator (get / set / delete)
- lock: ``SpinLock`` with jittered retry and bounded wait
- codec: value to string conversion (JSON with plain-text fallback)
- store: ``KeyValueStore`` protocol and ``RedisStore`` adapter
- config: settings via pydantic-settings
- logging: structlog configuration
- metrics: Prometheus counters and histograms
- errors: exception taxonomy
"""

from .cache import Coal
from .codec import decode, encode
from .config import CoalSettings, get_settings
from .errors import (
    AcquireTimeoutError,
    CoalException,
    EncodingError,
    InvalidArgumentError,
    StoreError,
)
from .lock import LockAcquisition, SpinLock
from .metrics import CacheMetrics
from .store import KeyValueStore, RedisStore

__all__ = [
    "Coal",
    "CoalSettings",
    "get_settings",
    "SpinLock",
    "LockAcquisition",
    "KeyValueStore",
    "RedisStore",
    "CacheMetrics",
    "encode",
    "decode",
    "CoalException",
    "InvalidArgumentError",
    "EncodingError",
    "StoreError",
    "AcquireTimeoutError",
]
