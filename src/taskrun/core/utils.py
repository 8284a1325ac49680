from __future__ import annotations

"""
taskrun.core.utils
==================

Low-level helpers with **no external dependencies**:
- Compact JSON serialization for uploaded documents.
- Exact conversions between datetimes and epoch milliseconds.
"""

import json
from datetime import UTC, datetime, timedelta
from typing import Any

from .types import TimestampMs

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)


def dumps(x: Any) -> bytes:
    """
    Compact JSON dump to UTF-8 bytes (ensure_ascii=False, no spaces).
    Used for documents PUT to signed logs/result URLs.
    """
    return json.dumps(x, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def datetime_to_ms(dt: datetime) -> TimestampMs:
    """
    Epoch milliseconds for a datetime, computed with integer arithmetic.

    `dt.timestamp() * 1000` loses the last millisecond for many values because
    of float rounding, which is enough to skew a reclaim deadline.
    """
    return (as_utc(dt) - _EPOCH) // _ONE_MS


def ms_to_iso(ms: TimestampMs) -> str:
    """RFC3339 / ISO8601 with milliseconds, UTC (`...Z`)."""
    dt = _EPOCH + timedelta(milliseconds=ms)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
