"""Canonical JSON and request hashing for idempotent calculations."""

import hashlib
import json
from datetime import datetime
from decimal import Decimal
from typing import Any


def _canonical_value(obj: Any) -> Any:
    """Convert value for canonical representation."""
    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, int):
        return obj
    if isinstance(obj, (float, Decimal)):
        # 100 and 100.0 hash the same
        value = float(obj)
        return int(value) if value.is_integer() else value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): _canonical_value(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_canonical_value(v) for v in obj]
    return str(obj)


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON string (sorted keys, no whitespace)."""
    return json.dumps(_canonical_value(obj), sort_keys=True, separators=(",", ":"))


def request_hash(obj: Any) -> str:
    """SHA256 of the canonical JSON of a request payload."""
    return hashlib.sha256(canonical_json(obj).encode()).hexdigest()
