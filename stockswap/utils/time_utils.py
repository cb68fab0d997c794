"""
Time helpers.

Registration names and contacts sent upstream must be unique per call;
``unique_suffix()`` supplies a millisecond timestamp for that purpose.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def unique_suffix() -> str:
    """Millisecond epoch timestamp as a string, e.g. ``"1761000000123"``."""
    return str(time.time_ns() // 1_000_000)
