"""
Value codec: application values to stored strings and back.

Containers go through JSON. Scalars are written as their JSON literal so that
``True``, ``42`` and ``1.5`` come back with the same type; any other scalar
(``Decimal``, ``UUID``, ``datetime``) is stored as ``str(value)``. Decoding is
lenient: text that is not valid JSON is returned as-is, which means a stored
string such as ``"123"`` reads back as the integer ``123``.
"""

import json
from typing import Any, Optional, Union

from pydantic import BaseModel

from .errors import EncodingError


def encode(value: Any) -> str:
    """Convert ``value`` to its stored string form."""
    if isinstance(value, str):
        return value

    if isinstance(value, BaseModel):
        return value.model_dump_json()

    if isinstance(value, (dict, list, tuple, bool, int, float)):
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as e:
            # ValueError covers circular references
            raise EncodingError(
                f"Cannot serialize {type(value).__name__} value: {e}",
                details={"type": type(value).__name__}
            ) from e

    if value is None or isinstance(value, (set, frozenset)):
        raise EncodingError(
            f"Unsupported value type: {type(value).__name__}",
            details={"type": type(value).__name__}
        )

    # Other scalars (Decimal, UUID, datetime, ...) use their string form
    return str(value)


def decode(stored: Optional[Union[str, bytes]]) -> Any:
    """Convert a stored string back to a value; ``None`` stays ``None``."""
    if stored is None:
        return None

    if isinstance(stored, bytes):
        stored = stored.decode("utf-8")

    try:
        return json.loads(stored)
    except ValueError:
        # Not JSON at all, plain text is a valid cached value
        return stored
