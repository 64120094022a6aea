"""
Error taxonomy for the Coal cache layer.
"""

from typing import Dict, Any, Optional


class CoalException(Exception):
    """Base exception for Coal cache operations."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form, used for structured log fields."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


class InvalidArgumentError(CoalException):
    """Malformed caller input (bad key, missing value, non-callable recompute)."""

    def __init__(self, message: str = "Invalid argument", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_ARGUMENT", message, details)


class EncodingError(CoalException):
    """Value cannot be converted to a storable string."""

    def __init__(self, message: str = "Value cannot be encoded", details: Optional[Dict[str, Any]] = None):
        super().__init__("ENCODING_ERROR", message, details)


class StoreError(CoalException):
    """Failure reported by the backing key-value store."""

    def __init__(self, message: str = "Store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_ERROR", message, details)


class AcquireTimeoutError(CoalException):
    """Lock was not obtained within the allotted time."""

    def __init__(self, message: str = "Error while obtaining lock to cache", details: Optional[Dict[str, Any]] = None):
        super().__init__("LOCK_ACQUIRE_TIMEOUT", message, details)
