"""
Time Utilities

Signing needs millisecond epoch timestamps, and tests need to pin them.
Every signer takes a `clock` callable that returns epoch milliseconds;
`now_ms` is the production clock.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], int]


def datetime_to_timestamp(dt: datetime, milliseconds: bool = False) -> int:
    """
    Convert a datetime object to Unix timestamp.

    Notes:
        - If datetime is naive (no timezone), UTC is assumed
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    if milliseconds:
        return int(dt.timestamp() * 1000)

    return int(dt.timestamp())


def current_utc_datetime() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Production clock for signers: current epoch milliseconds."""
    return datetime_to_timestamp(current_utc_datetime(), milliseconds=True)
